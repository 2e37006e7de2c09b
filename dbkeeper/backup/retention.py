"""
Retention policy enforcement for backups.

Keeps at most ``max_backups`` archives per job by deleting the oldest
archives (file first, then log record) once the cap is exceeded.
"""

import logging
from typing import Any, Dict, Optional

from dbkeeper.schedules import Job
from .backuplog import BackupLog, JobRef, MANUAL
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Manages retention cap enforcement for backup jobs.
    """

    def __init__(self, backup_log: BackupLog, storage: LocalStorage):
        """
        Initialize retention manager.

        Args:
            backup_log: Log of completed backups
            storage: Backup directory handler
        """
        self.backup_log = backup_log
        self.storage = storage

    def enforce(self, job_ref: JobRef, max_backups: int) -> int:
        """
        Delete the oldest backups of a job beyond its cap.

        A file that is already gone is not an error: its record is deleted
        anyway. A file that cannot be removed keeps its record so it stays
        visible and manageable.

        Args:
            job_ref: Job ID, or MANUAL for the manual group
            max_backups: Number of most recent backups to keep

        Returns:
            Number of backups deleted
        """
        records = self.backup_log.query_by_job(job_ref)
        excess = len(records) - max_backups

        if excess <= 0:
            return 0

        deleted_count = 0
        for record in records[:excess]:
            try:
                removed = self.storage.delete(record.file_name)
            except StorageError as e:
                logger.error(f"Failed to delete backup file {record.file_name}: {e}")
                continue

            if not removed:
                logger.info(f"Backup file already gone: {record.file_name}")

            self.backup_log.delete(record.id)
            deleted_count += 1
            logger.info(f"Deleted old backup: {record.file_name}")

        logger.info(f"Retention for {_describe(job_ref)}: kept {max_backups}, deleted {deleted_count}")
        return deleted_count

    def enforce_all(self, jobs: Dict[str, Job], manual_max_backups: Optional[int] = None) -> Dict[str, Any]:
        """
        Enforce retention caps for every job.

        Args:
            jobs: Mapping of job id -> Job
            manual_max_backups: Cap for manual backups, None to leave them alone

        Returns:
            Dict with summary of cleanup operations:
            {
                'jobs_processed': int,
                'deleted': int,
                'errors': List[str]
            }
        """
        logger.info("Starting retention enforcement for all jobs")

        summary = {
            'jobs_processed': 0,
            'deleted': 0,
            'errors': []
        }

        targets = [(job.id, job.max_backups, job.label) for job in jobs.values()]
        if manual_max_backups is not None:
            targets.append((MANUAL, manual_max_backups, 'manual backups'))

        for job_ref, max_backups, name in targets:
            try:
                summary['deleted'] += self.enforce(job_ref, max_backups)
                summary['jobs_processed'] += 1
            except Exception as e:
                error_msg = f"Failed to enforce retention for {name}: {e}"
                logger.exception(error_msg)
                summary['errors'].append(error_msg)

        logger.info(
            f"Retention enforcement complete. "
            f"Jobs: {summary['jobs_processed']}, "
            f"Deleted: {summary['deleted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        return summary


def _describe(job_ref: JobRef) -> str:
    return 'manual backups' if job_ref is MANUAL else f"job {job_ref}"
