"""
Background ticker for dbkeeper.

Two APScheduler jobs drive all scheduled work:
- backup_ticker: every TICK_INTERVAL_SECONDS, runs each due backup job in turn
- retention_sweep: once a day, trims every job back to its retention cap
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dbkeeper import db
from dbkeeper.backup.manager import get_backup_manager


logger = logging.getLogger(__name__)

TICKER_JOB_ID = 'backup_ticker'
RETENTION_JOB_ID = 'retention_sweep'

# Set by init_scheduler() in the process that owns the ticker
scheduler = None
flask_app = None


def init_scheduler(app):
    """
    Build the ticker and register its jobs (idempotent).

    A single executor thread with max_instances=1 keeps ticks from
    overlapping, so backups always run one at a time.

    Args:
        app: Flask app the ticker jobs run against
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    flask_app = app
    interval = app.config.get('TICK_INTERVAL_SECONDS', 60)

    scheduler = BackgroundScheduler(
        jobstores={'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])},
        executors={'default': ThreadPoolExecutor(max_workers=1)},
        job_defaults={
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': interval
        },
        timezone=app.config.get('SCHEDULER_TIMEZONE')
    )

    scheduler.add_job(
        func=_run_ticker,
        trigger=IntervalTrigger(seconds=interval),
        id=TICKER_JOB_ID,
        name='Backup Ticker',
        replace_existing=True
    )
    scheduler.add_job(
        func=_run_retention_sweep,
        trigger=CronTrigger(hour=app.config.get('RETENTION_SWEEP_HOUR', 2), minute=0),
        id=RETENTION_JOB_ID,
        name='Daily Retention Sweep',
        replace_existing=True
    )

    logger.info(f"Ticker configured: every {interval}s, retention sweep at {app.config.get('RETENTION_SWEEP_HOUR', 2):02d}:00")
    return scheduler


def start_scheduler():
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if scheduler.running:
        logger.info("Ticker already running")
        return

    scheduler.start()
    for info in get_scheduled_jobs():
        logger.info(f"Ticker job {info['id']} next fires at {info['next_run'] or 'N/A'}")


def stop_scheduler():
    if scheduler is not None and scheduler.running:
        scheduler.shutdown()
        logger.info("Ticker stopped")


def _run_ticker():
    """Run every backup job whose next run has passed."""
    with flask_app.app_context():
        try:
            get_backup_manager().run_due_jobs()
        except Exception as e:
            # Keep the interval job alive; the next tick retries
            logger.exception(f"Backup tick failed: {e}")


def _run_retention_sweep():
    with flask_app.app_context():
        try:
            summary = get_backup_manager().enforce_retention()
            logger.info(f"Retention sweep deleted {summary['deleted']} backups")
        except Exception as e:
            logger.exception(f"Retention sweep failed: {e}")


def _job_info(job) -> dict:
    return {
        'id': job.id,
        'name': job.name,
        'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
        'trigger': str(job.trigger)
    }


def get_scheduled_jobs() -> list:
    """Ticker jobs known to this process (empty when it doesn't own the ticker)."""
    if scheduler is None:
        return []
    return [_job_info(job) for job in scheduler.get_jobs()]


def _count_jobs_in_database() -> int:
    """
    Count rows in APScheduler's job store table.

    Lets processes that don't own the ticker (reloader parent, HTTP-only
    gunicorn workers) tell whether another process registered it.
    """
    try:
        return db.session.execute(text("SELECT COUNT(*) FROM apscheduler_jobs")).scalar() or 0
    except SQLAlchemyError:
        # Table is created on first start of the ticker
        db.session.rollback()
        return 0


def is_scheduler_running() -> bool:
    if scheduler is not None and scheduler.running:
        return True
    return _count_jobs_in_database() > 0


def get_scheduler_diagnostics() -> dict:
    """
    Describe ticker state for troubleshooting.

    Returns:
        Dict with initialized, running, state and jobs_in_database, plus the
        job list when this process owns the ticker
    """
    jobs_in_db = _count_jobs_in_database()

    if scheduler is None:
        return {
            'initialized': False,
            'running': jobs_in_db > 0,
            'state': 'NOT_INITIALIZED',
            'jobs_in_database': jobs_in_db,
            'note': 'Ticker is owned by another process (reloader parent or HTTP-only worker)'
        }

    try:
        jobs = scheduler.get_jobs()
    except Exception as e:
        logger.warning(f"Failed to read ticker jobs: {e}")
        return {
            'initialized': True,
            'running': jobs_in_db > 0,
            'state': 'ERROR',
            'jobs_in_database': jobs_in_db,
            'error': str(e)
        }

    return {
        'initialized': True,
        'running': scheduler.running,
        'state': str(scheduler.state),
        'job_count': len(jobs),
        'jobs_in_database': jobs_in_db,
        'jobs': [dict(_job_info(job), pending=job.pending) for job in jobs]
    }
