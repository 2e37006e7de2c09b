"""
Shared pytest fixtures for dbkeeper tests.

This module provides fixtures for:
- Flask app, test client and CLI runner
- Database setup with in-memory SQLite
- A small SQLite database to dump
- Frozen clock and fake dump producers
- Backup manager and job payload fixtures
"""

import os
import shutil
import tempfile
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, text

from dbkeeper import create_app, db as _db
from dbkeeper.backup.backuplog import BackupLog
from dbkeeper.backup.dump import DumpError, DumpProducer
from dbkeeper.backup.jobstore import JobStore
from dbkeeper.backup.manager import BackupManager
from dbkeeper.backup.storage import LocalStorage
from dbkeeper.clock import FixedClock


# Wednesday
FROZEN_NOW = datetime(2024, 1, 10, 12, 0, 0)


class FakeDumpProducer(DumpProducer):
    """Dump producer returning canned bytes, or failing on demand."""

    def __init__(self, data=b"CREATE TABLE t (id INTEGER);\nINSERT INTO t VALUES (1);\n"):
        self.data = data
        self.error = None
        self.calls = 0

    def produce(self) -> bytes:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.data


def _create_source_database(path):
    engine = create_engine(f'sqlite:///{path}')
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE customers (id INTEGER PRIMARY KEY, name VARCHAR(50), note TEXT)"))
        connection.execute(text("INSERT INTO customers (name, note) VALUES ('Alice', 'it''s fine'), ('Bob', NULL)"))
    engine.dispose()


@pytest.fixture(scope='function')
def app():
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite for application state and a temporary SQLite
    file as the database being backed up.
    """
    temp_dir = tempfile.mkdtemp()
    source_path = os.path.join(temp_dir, 'source.db')
    _create_source_database(source_path)

    app = create_app('testing', test_config={
        'BACKUP_DIR': os.path.join(temp_dir, 'backups'),
        'DUMP_DATABASE_URI': f'sqlite:///{source_path}',
    })

    yield app

    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app, db):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app, db):
    """Flask CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def backup_dir(app):
    return app.config['BACKUP_DIR']


@pytest.fixture
def clock():
    """Clock frozen on a Wednesday at noon."""
    return FixedClock(FROZEN_NOW)


@pytest.fixture
def dump_producer():
    return FakeDumpProducer()


@pytest.fixture
def failing_dump_producer():
    producer = FakeDumpProducer()
    producer.error = DumpError("Connection refused")
    return producer


@pytest.fixture
def storage(backup_dir):
    return LocalStorage(backup_dir)


@pytest.fixture
def job_store(db):
    return JobStore()


@pytest.fixture
def backup_log(db):
    return BackupLog()


@pytest.fixture
def manager(db, job_store, backup_log, storage, dump_producer, clock):
    """BackupManager wired to the frozen clock and a fake dump."""
    return BackupManager(
        job_store=job_store,
        backup_log=backup_log,
        storage=storage,
        dump_producer=dump_producer,
        clock=clock
    )


@pytest.fixture
def daily_job_data():
    return {
        'label': 'Nightly',
        'schedule': 'daily',
        'time_of_day': '02:00',
        'max_backups': 7
    }


@pytest.fixture
def weekly_job_data():
    return {
        'label': 'Weekly Full',
        'schedule': 'weekly',
        'time_of_day': '10:00',
        'weekday': 3,
        'max_backups': 4
    }


@pytest.fixture
def monthly_job_data():
    return {
        'label': 'Month End',
        'schedule': 'monthly',
        'time_of_day': '23:30',
        'day_of_month': 31,
        'max_backups': 12
    }


@pytest.fixture
def daily_job(manager, daily_job_data):
    """A saved daily job (next run 2024-01-11 02:00)."""
    return manager.save_job(daily_job_data)


@pytest.fixture
def mock_scheduler():
    """Mock APScheduler instance."""
    scheduler = MagicMock()
    scheduler.running = True
    scheduler.state = 1
    scheduler.get_jobs.return_value = []
    return scheduler


@pytest.fixture
def make_backup_file(backup_dir):
    """Factory creating stand-in archives in the backup directory."""
    def _make(file_name, content=b'PK-data'):
        os.makedirs(backup_dir, exist_ok=True)
        path = os.path.join(backup_dir, file_name)
        with open(path, 'wb') as handle:
            handle.write(content)
        return path
    return _make
