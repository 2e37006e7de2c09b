"""
Schema setup for dbkeeper.

A short, ordered list of idempotent steps run at startup instead of Alembic.
Several gunicorn workers may run them at once; a step that loses the race
logs and moves on.
"""

import logging
from sqlalchemy import text, inspect
from sqlalchemy.exc import SQLAlchemyError
from dbkeeper import db

logger = logging.getLogger(__name__)

RETENTION_INDEX = 'ix_backup_records_job_time'


def init_database_schema(app):
    """Create the schema on an empty database, otherwise bring it up to date."""
    with app.app_context():
        if inspect(db.engine).get_table_names():
            run_migrations(app)
            return

        logger.info("Empty database, creating schema")
        try:
            db.create_all()
        except SQLAlchemyError as e:
            logger.warning(f"Schema creation failed (already created by another worker?): {e}")


def _create_missing_tables(inspector):
    missing = [
        table.name for table in db.metadata.sorted_tables
        if not inspector.has_table(table.name)
    ]
    if not missing:
        return

    logger.info(f"Migration: creating tables {missing}")
    db.create_all()


def _add_retention_index(inspector):
    if not inspector.has_table('backup_records'):
        return

    if RETENTION_INDEX in {index['name'] for index in inspector.get_indexes('backup_records')}:
        return

    logger.info(f"Migration: adding {RETENTION_INDEX} on backup_records")
    db.session.execute(text(
        f"CREATE INDEX {RETENTION_INDEX} ON backup_records (job_id, backup_time)"
    ))
    db.session.commit()


MIGRATIONS = [
    _create_missing_tables,
    _add_retention_index,
]


def run_migrations(app):
    """Apply every migration step in order; a failed step is rolled back and logged."""
    for step in MIGRATIONS:
        try:
            step(inspect(db.engine))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Migration {step.__name__} failed: {e}")
