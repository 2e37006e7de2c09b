"""
Backup executor - runs a single database backup.

Workflow:
1. Ensure the backup directory exists
2. Produce the database dump
3. Write the dump into a single-entry zip archive
4. Record the backup in the backup log
5. Scheduled jobs: advance next_run and enforce the retention cap

A failure in steps 2-4 leaves no archive and no log record behind, and a
scheduled job keeps its old next_run so the next tick retries it.
"""

import logging
import os
from dataclasses import replace
from typing import Optional, Tuple, Union

from dbkeeper.models import BackupOrigin, BackupRecord, PersistenceError
from dbkeeper.schedules import Job, compute_next_run
from .backuplog import BackupLog, MANUAL
from .compression import (
    create_archive,
    generate_archive_names,
    get_archive_size,
    ArchiveExistsError,
    CompressionError
)
from .dump import DumpError, DumpProducer
from .jobstore import JobStore
from .retention import RetentionManager
from .storage import LocalStorage


logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 10


class BackupExecutor:
    """
    Orchestrates one backup run for a job or for a manual request.
    """

    def __init__(
        self,
        job_store: JobStore,
        backup_log: BackupLog,
        storage: LocalStorage,
        dump_producer: DumpProducer,
        clock,
        manual_max_backups: Optional[int] = None
    ):
        """
        Initialize backup executor.

        Args:
            job_store: Persistent job mapping
            backup_log: Log of completed backups
            storage: Backup directory handler
            dump_producer: Source of database dump bytes
            clock: Time source with a now() method
            manual_max_backups: Retention cap for manual backups (None = unbounded)
        """
        self.job_store = job_store
        self.backup_log = backup_log
        self.storage = storage
        self.dump_producer = dump_producer
        self.clock = clock
        self.manual_max_backups = manual_max_backups
        self.retention = RetentionManager(backup_log, storage)

    def run(self, job: Union[Job, BackupOrigin]) -> BackupRecord:
        """
        Execute a backup.

        Args:
            job: Job to back up, or MANUAL for an ad-hoc backup

        Returns:
            BackupRecord of the stored archive

        Raises:
            DumpError: If the dump cannot be produced or is empty
            CompressionError: If the archive cannot be written
            StorageError: If the backup directory is unusable
            PersistenceError: If the backup cannot be recorded
        """
        manual = job is MANUAL
        description = 'manual backup' if manual else f"job '{job.label}'"

        logger.info(f"Starting backup: {description}")
        self.storage.ensure_directory()
        started_at = self.clock.now()

        # Step 1: Produce dump
        try:
            dump = self.dump_producer.produce()
            if not dump:
                raise DumpError("Database dump is empty")
        except DumpError as e:
            if not manual:
                logger.warning(
                    f"Backup of {description} failed, next run stays at "
                    f"{job.next_run.isoformat() if job.next_run else 'N/A'} for retry: {e}"
                )
            raise

        # Step 2: Create archive
        preferred, _ = generate_archive_names(started_at, None if manual else job.label)
        filename, archive_path = self._write_archive(preferred, dump)

        # Step 3: Record backup
        try:
            file_size = get_archive_size(archive_path)
            record = self.backup_log.insert(
                MANUAL if manual else job.id,
                self.clock.now(),
                filename,
                file_size
            )
        except (CompressionError, PersistenceError):
            self.storage.delete(filename)
            raise

        logger.info(f"Backup written: {filename} ({file_size / 1024 / 1024:.2f} MB)")

        # Step 4: Schedule and retention
        if manual:
            if self.manual_max_backups is not None:
                self.retention.enforce(MANUAL, self.manual_max_backups)
        else:
            updated = self._advance_schedule(job)
            max_backups = updated.max_backups if updated else job.max_backups
            self.retention.enforce(job.id, max_backups)

        return record

    def _write_archive(self, preferred: str, dump: bytes) -> Tuple[str, str]:
        """
        Write the archive under the first free variant of the preferred name.

        Another process may claim a name between unique_name() and the write;
        that attempt is retried with the next suffix.

        Returns:
            Tuple of (filename, full archive path)
        """
        for _ in range(MAX_NAME_ATTEMPTS):
            filename = self.storage.unique_name(preferred)
            entry_name = f"{os.path.splitext(filename)[0]}.sql"
            try:
                return filename, create_archive(entry_name, dump, self.storage.path_for(filename))
            except ArchiveExistsError:
                logger.info(f"Archive name {filename} taken by a concurrent backup, retrying")

        raise CompressionError(f"No free archive name for {preferred} after {MAX_NAME_ATTEMPTS} attempts")

    def _advance_schedule(self, job: Job) -> Optional[Job]:
        """
        Recompute next_run from the currently stored definition of a job.

        Returns:
            The updated job, or None if the job was deleted during the run
        """
        now = self.clock.now()
        updated = self.job_store.update(
            job.id,
            lambda stored: replace(stored, next_run=compute_next_run(stored, now))
        )

        if updated is None:
            logger.info(f"Job '{job.label}' was deleted during the backup; schedule not updated")
        else:
            logger.info(f"Next run for job '{updated.label}': {updated.next_run.isoformat()}")

        return updated
