"""
Unit tests for database models (dbkeeper/models.py) and schema migrations
(dbkeeper/migrations.py).
"""

from datetime import datetime

import pytest
from sqlalchemy import inspect, text

from dbkeeper.migrations import RETENTION_INDEX, init_database_schema, run_migrations
from dbkeeper.models import BackupOrigin, BackupRecord, Setting


class TestSettingModel:
    """Test Setting model."""

    def test_create_setting(self, db):
        setting = Setting(key='backup_jobs', value='{}')
        db.session.add(setting)
        db.session.commit()

        assert setting.id is not None
        assert setting.updated_at is not None
        assert repr(setting) == '<Setting backup_jobs>'

    def test_key_unique(self, db):
        db.session.add(Setting(key='backup_jobs', value='{}'))
        db.session.commit()

        db.session.add(Setting(key='backup_jobs', value='{}'))
        with pytest.raises(Exception):  # IntegrityError
            db.session.commit()


class TestBackupRecordModel:
    """Test BackupRecord model."""

    def test_scheduled_record(self, db):
        record = BackupRecord(
            job_id='abc123',
            origin=BackupOrigin.SCHEDULED.value,
            backup_time=datetime(2024, 1, 3, 10, 0, 5),
            file_name='backup-nightly-2024-01-03_10-00-05.zip',
            file_size=2048
        )
        db.session.add(record)
        db.session.commit()

        assert record.id is not None
        assert not record.is_manual
        assert record.to_dict() == {
            'id': record.id,
            'job_id': 'abc123',
            'origin': 'scheduled',
            'backup_time': '2024-01-03T10:00:05',
            'file_name': 'backup-nightly-2024-01-03_10-00-05.zip',
            'file_size': 2048,
        }

    def test_manual_record(self, db):
        record = BackupRecord(
            job_id=None,
            origin=BackupOrigin.MANUAL.value,
            backup_time=datetime(2024, 1, 3, 10, 0),
            file_name='backup-2024-01-03_10-00-00.zip',
            file_size=10
        )
        db.session.add(record)
        db.session.commit()

        assert record.is_manual
        assert 'origin=manual' in repr(record)

    def test_origin_defaults_to_scheduled(self, db):
        record = BackupRecord(job_id='x', backup_time=datetime(2024, 1, 1), file_name='a.zip', file_size=1)
        db.session.add(record)
        db.session.commit()

        assert record.origin == 'scheduled'

    def test_retention_index_exists(self, db):
        indexes = [index['name'] for index in inspect(db.engine).get_indexes('backup_records')]
        assert RETENTION_INDEX in indexes


class TestMigrations:
    """Test schema initialization and migrations."""

    def test_init_creates_schema(self, app, db):
        db.drop_all()

        init_database_schema(app)

        tables = inspect(db.engine).get_table_names()
        assert 'settings' in tables
        assert 'backup_records' in tables

    def test_creates_missing_table(self, app, db):
        db.session.execute(text("DROP TABLE settings"))
        db.session.commit()

        run_migrations(app)

        assert 'settings' in inspect(db.engine).get_table_names()

    def test_adds_missing_retention_index(self, app, db):
        db.session.execute(text(f"DROP INDEX {RETENTION_INDEX}"))
        db.session.commit()

        run_migrations(app)

        indexes = [index['name'] for index in inspect(db.engine).get_indexes('backup_records')]
        assert RETENTION_INDEX in indexes

    def test_migrations_idempotent(self, app, db):
        run_migrations(app)
        run_migrations(app)

        assert 'backup_records' in inspect(db.engine).get_table_names()
