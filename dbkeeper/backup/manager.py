"""
Backup manager - the operations exposed to routes, CLI and the ticker.
"""

import logging
from typing import Any, Dict, List, Optional

from flask import current_app

from dbkeeper.clock import LocalClock
from dbkeeper.models import BackupRecord, PersistenceError
from dbkeeper.schedules import Job, Schedule, build_job, compute_next_run
from .backuplog import BackupLog, MANUAL
from .compression import CompressionError
from .dump import DumpError, DumpProducer, create_dump_producer
from .executor import BackupExecutor
from .jobstore import JobStore, JobNotFoundError
from .storage import LocalStorage, StorageError, BackupFileNotFound


logger = logging.getLogger(__name__)

# Backup listing groups, in display order
BACKUP_GROUPS = [s.value for s in Schedule] + ['manual', 'unknown']


class BackupManager:
    """
    Facade over job storage, backup execution and the backup log.
    """

    def __init__(
        self,
        job_store: JobStore,
        backup_log: BackupLog,
        storage: LocalStorage,
        dump_producer: DumpProducer,
        clock=None,
        manual_max_backups: Optional[int] = None
    ):
        self.job_store = job_store
        self.backup_log = backup_log
        self.storage = storage
        self.clock = clock or LocalClock()
        self.manual_max_backups = manual_max_backups
        self.executor = BackupExecutor(
            job_store,
            backup_log,
            storage,
            dump_producer,
            self.clock,
            manual_max_backups=manual_max_backups
        )

    # Jobs

    def list_jobs(self) -> List[Job]:
        return list(self.job_store.get_all().values())

    def get_job(self, job_id: str) -> Job:
        return self.job_store.require(job_id)

    def save_job(self, data: Dict[str, Any], job_id: Optional[str] = None) -> Job:
        """
        Create or update a job.

        The payload is validated, max_backups is clamped for the schedule and
        next_run is recomputed from the current time.

        Args:
            data: Job payload
            job_id: ID of the job to update, None to create a new job

        Returns:
            The saved Job

        Raises:
            JobValidationError: If the payload is invalid
            JobNotFoundError: If job_id doesn't exist
            PersistenceError: If the job cannot be stored
        """
        if job_id is not None:
            self.job_store.require(job_id)

        job = build_job(data, job_id)
        job.next_run = compute_next_run(job, self.clock.now())

        if job_id is None:
            self.job_store.put(job)
            logger.info(f"Created backup job '{job.label}' ({job.schedule.value}), next run {job.next_run.isoformat()}")
        else:
            if self.job_store.update(job_id, lambda _stored: job) is None:
                raise JobNotFoundError(f"Backup job not found: {job_id}")
            logger.info(f"Updated backup job '{job.label}' ({job.schedule.value}), next run {job.next_run.isoformat()}")

        return job

    def delete_job(self, job_id: str):
        """
        Delete a job. Its backups stay on disk and in the log.

        Raises:
            JobNotFoundError: If job_id doesn't exist
        """
        if not self.job_store.delete(job_id):
            raise JobNotFoundError(f"Backup job not found: {job_id}")
        logger.info(f"Deleted backup job {job_id}")

    def next_due_job(self) -> Optional[Job]:
        jobs = [job for job in self.list_jobs() if job.next_run is not None]
        if not jobs:
            return None
        return min(jobs, key=lambda job: job.next_run)

    # Runs

    def trigger_manual_backup(self) -> BackupRecord:
        """Run an ad-hoc backup not tied to any job."""
        return self.executor.run(MANUAL)

    def run_job_now(self, job_id: str) -> BackupRecord:
        """Run a scheduled job immediately, as if it were due."""
        return self.executor.run(self.job_store.require(job_id))

    def run_due_jobs(self) -> Dict[str, Any]:
        """
        Run every job whose next_run has passed, one at a time.

        A failure in one job is logged and does not stop the scan.

        Returns:
            Dict with summary:
            {
                'jobs_checked': int,
                'jobs_run': int,
                'errors': List[str]
            }
        """
        now = self.clock.now()
        jobs = self.job_store.get_all()

        summary = {
            'jobs_checked': len(jobs),
            'jobs_run': 0,
            'errors': []
        }

        for job_id in jobs:
            # Re-read so edits and deletes made during this tick are honoured
            job = self.job_store.get(job_id)
            if job is None or not job.is_due(now):
                continue

            try:
                self.executor.run(job)
                summary['jobs_run'] += 1
            except (DumpError, CompressionError, StorageError, PersistenceError) as e:
                error_msg = f"Backup job '{job.label}' failed: {e}"
                logger.error(error_msg)
                summary['errors'].append(error_msg)
            except Exception as e:
                error_msg = f"Backup job '{job.label}' failed unexpectedly: {e}"
                logger.exception(error_msg)
                summary['errors'].append(error_msg)

        if summary['jobs_run'] or summary['errors']:
            logger.info(
                f"Tick complete. Checked: {summary['jobs_checked']}, "
                f"Run: {summary['jobs_run']}, Errors: {len(summary['errors'])}"
            )

        return summary

    def enforce_retention(self) -> Dict[str, Any]:
        return self.executor.retention.enforce_all(
            self.job_store.get_all(),
            manual_max_backups=self.manual_max_backups
        )

    # Backups

    def list_backups(self) -> Dict[str, List[BackupRecord]]:
        """
        List backups grouped by the schedule type of their job, newest first.

        Returns:
            Dict with keys hourly, daily, weekly, monthly, manual and unknown
            (backups of deleted jobs)
        """
        jobs = self.job_store.get_all()
        grouped = {group: [] for group in BACKUP_GROUPS}

        for record in self.backup_log.query_all():
            if record.is_manual:
                grouped['manual'].append(record)
            elif record.job_id in jobs:
                grouped[jobs[record.job_id].schedule.value].append(record)
            else:
                grouped['unknown'].append(record)

        return grouped

    def get_backup(self, record_id: int) -> BackupRecord:
        return self.backup_log.require(record_id)

    def delete_backup(self, record_id: int):
        """
        Delete a backup file and its record. A missing file is not an error.

        Raises:
            BackupNotFoundError: If record_id doesn't exist
            StorageError: If the file exists but cannot be deleted
        """
        record = self.backup_log.require(record_id)

        if not self.storage.delete(record.file_name):
            logger.info(f"Backup file already gone: {record.file_name}")

        self.backup_log.delete(record.id)
        logger.info(f"Deleted backup {record.file_name}")

    def get_backup_file_path(self, record_id: int) -> str:
        """
        Get the on-disk path of a backup for download.

        Raises:
            BackupNotFoundError: If record_id doesn't exist
            BackupFileNotFound: If the archive is missing from disk
        """
        record = self.backup_log.require(record_id)

        if not self.storage.exists(record.file_name):
            logger.warning(f"Backup file missing on disk: {record.file_name}")
            raise BackupFileNotFound(f"Backup file not found: {record.file_name}")

        return self.storage.path_for(record.file_name)


def get_backup_manager(clock=None) -> BackupManager:
    """
    Build a BackupManager from the current Flask app configuration.

    Args:
        clock: Optional time source (defaults to local wall clock)
    """
    config = current_app.config

    return BackupManager(
        job_store=JobStore(),
        backup_log=BackupLog(),
        storage=LocalStorage(config['BACKUP_DIR']),
        dump_producer=create_dump_producer(config.get('DUMP_DATABASE_URI')),
        clock=clock,
        manual_max_backups=config.get('MANUAL_MAX_BACKUPS')
    )
