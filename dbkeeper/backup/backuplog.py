"""
Persistent log of completed backups.
"""

from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from dbkeeper import db
from dbkeeper.models import BackupOrigin, BackupRecord, PersistenceError


# Sentinel job reference for backups not tied to any job
MANUAL = BackupOrigin.MANUAL

JobRef = Union[str, BackupOrigin]


class BackupNotFoundError(ValueError):
    """Raised when a backup record doesn't exist."""
    pass


class BackupLog:
    """
    Append-only record of completed backups, queried by job.
    """

    def insert(self, job_ref: JobRef, backup_time: datetime, file_name: str, file_size: int) -> BackupRecord:
        """
        Record a completed backup.

        Args:
            job_ref: Owning job ID, or MANUAL
            backup_time: Completion time (local)
            file_name: Archive filename in the backup directory
            file_size: Archive size in bytes

        Returns:
            The stored BackupRecord

        Raises:
            PersistenceError: If the insert fails
        """
        if _is_manual(job_ref):
            record = BackupRecord(
                job_id=None,
                origin=BackupOrigin.MANUAL.value,
                backup_time=backup_time,
                file_name=file_name,
                file_size=file_size
            )
        else:
            record = BackupRecord(
                job_id=job_ref,
                origin=BackupOrigin.SCHEDULED.value,
                backup_time=backup_time,
                file_name=file_name,
                file_size=file_size
            )

        db.session.add(record)
        self._commit("record backup")
        return record

    def query_by_job(self, job_ref: JobRef) -> List[BackupRecord]:
        """
        Get all records of a job, oldest first.

        Args:
            job_ref: Job ID, or MANUAL for the manual group
        """
        if _is_manual(job_ref):
            query = BackupRecord.query.filter(BackupRecord.origin == BackupOrigin.MANUAL.value)
        else:
            query = BackupRecord.query.filter(
                BackupRecord.origin == BackupOrigin.SCHEDULED.value,
                BackupRecord.job_id == job_ref
            )

        return query.order_by(BackupRecord.backup_time.asc(), BackupRecord.id.asc()).all()

    def query_all(self) -> List[BackupRecord]:
        """Get every record, newest first."""
        return BackupRecord.query.order_by(
            BackupRecord.backup_time.desc(), BackupRecord.id.desc()
        ).all()

    def get(self, record_id: int) -> Optional[BackupRecord]:
        return db.session.get(BackupRecord, record_id)

    def require(self, record_id: int) -> BackupRecord:
        """
        Load a record that must exist.

        Raises:
            BackupNotFoundError: If no record has this ID
        """
        record = self.get(record_id)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {record_id}")
        return record

    def delete(self, record_id: int) -> bool:
        """
        Delete a record.

        Returns:
            True if the record existed, False otherwise

        Raises:
            PersistenceError: If the delete fails
        """
        record = self.get(record_id)
        if record is None:
            return False

        db.session.delete(record)
        self._commit("delete backup record")
        return True

    def count(self) -> int:
        return BackupRecord.query.count()

    def total_size(self) -> int:
        return db.session.query(func.sum(BackupRecord.file_size)).scalar() or 0

    def _commit(self, action: str):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to {action}: {e}")


def _is_manual(job_ref: JobRef) -> bool:
    return isinstance(job_ref, BackupOrigin) and job_ref == BackupOrigin.MANUAL
