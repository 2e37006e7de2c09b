"""
Persistent job mapping.

Jobs are kept as one ordered JSON object (job id -> job fields) in the
settings table. Every operation runs under one process-wide lock, and
writes read the row FOR UPDATE inside the committing transaction, so a
ticker update and a management edit never interleave within a process and
resolve last-writer-wins across processes.
"""

import json
import logging
import threading
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from dbkeeper import db
from dbkeeper.models import Setting, PersistenceError
from dbkeeper.schedules import Job


logger = logging.getLogger(__name__)

JOBS_SETTING_KEY = 'backup_jobs'

_jobs_lock = threading.RLock()


class JobNotFoundError(ValueError):
    """Raised when a backup job doesn't exist."""
    pass


class JobStore:
    """
    Ordered mapping of job id to Job, persisted as a single blob.
    """

    def __init__(self, key: str = JOBS_SETTING_KEY):
        self.key = key

    def get_all(self) -> Dict[str, Job]:
        """
        Load every job in insertion order.

        Returns:
            Dict of job id -> Job

        Raises:
            PersistenceError: If the stored mapping cannot be read
        """
        with _jobs_lock:
            return self._load(self._fetch())

    def get(self, job_id: str) -> Optional[Job]:
        return self.get_all().get(job_id)

    def require(self, job_id: str) -> Job:
        """
        Load a job that must exist.

        Raises:
            JobNotFoundError: If no job has this ID
        """
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Backup job not found: {job_id}")
        return job

    def put(self, job: Job):
        """
        Insert or replace a job. New jobs are appended to the mapping.

        Raises:
            PersistenceError: If the write fails
        """
        with _jobs_lock:
            setting = self._fetch(for_update=True)
            jobs = self._load(setting)
            jobs[job.id] = job
            self._save(setting, jobs)

    def delete(self, job_id: str) -> bool:
        """
        Remove a job.

        Returns:
            True if the job existed, False otherwise

        Raises:
            PersistenceError: If the write fails
        """
        with _jobs_lock:
            setting = self._fetch(for_update=True)
            jobs = self._load(setting)

            if job_id not in jobs:
                db.session.rollback()
                return False

            del jobs[job_id]
            self._save(setting, jobs)
            return True

    def update(self, job_id: str, change: Callable[[Job], Job]) -> Optional[Job]:
        """
        Atomically replace a stored job with ``change(job)``.

        Args:
            job_id: Job to update
            change: Function receiving the stored job and returning its replacement

        Returns:
            The updated job, or None if the job no longer exists

        Raises:
            PersistenceError: If the write fails
        """
        with _jobs_lock:
            setting = self._fetch(for_update=True)
            jobs = self._load(setting)

            job = jobs.get(job_id)
            if job is None:
                db.session.rollback()
                return None

            jobs[job_id] = change(job)
            self._save(setting, jobs)
            return jobs[job_id]

    def _fetch(self, for_update: bool = False) -> Optional[Setting]:
        query = Setting.query.filter_by(key=self.key).populate_existing()
        if for_update:
            query = query.with_for_update()

        try:
            return query.first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to read backup jobs: {e}")

    def _load(self, setting: Optional[Setting]) -> Dict[str, Job]:
        if setting is None:
            return {}

        try:
            raw_jobs = json.loads(setting.value)
            return {job_id: Job.from_dict(fields) for job_id, fields in raw_jobs.items()}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise PersistenceError(f"Stored backup jobs are corrupt: {e}")

    def _save(self, setting: Optional[Setting], jobs: Dict[str, Job]):
        value = json.dumps({job_id: job.to_dict() for job_id, job in jobs.items()})

        if setting is None:
            db.session.add(Setting(key=self.key, value=value))
        else:
            setting.value = value

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to save backup jobs: {e}")
            raise PersistenceError(f"Failed to save backup jobs: {e}")
