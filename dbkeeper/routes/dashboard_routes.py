"""
Dashboard routes - Overview and scheduler status endpoints.
"""

from flask import Blueprint, jsonify

from dbkeeper.backup.manager import get_backup_manager
from dbkeeper.scheduler import is_scheduler_running, get_scheduler_diagnostics


bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


@bp.route('/overview', methods=['GET'])
def get_overview():
    """
    Get dashboard overview statistics.

    Returns:
        JSON with overview stats:
        - total_jobs: Number of backup jobs
        - total_backups: Number of stored backups
        - total_size_mb: Combined size of all stored backups
        - next_job: The job due soonest
        - scheduler_status: Ticker running status
    """
    manager = get_backup_manager()

    next_job = manager.next_due_job()
    next_job_info = None
    if next_job:
        next_job_info = {
            'id': next_job.id,
            'label': next_job.label,
            'schedule': next_job.schedule.value,
            'next_run': next_job.next_run.isoformat()
        }

    total_size = manager.backup_log.total_size()

    return jsonify({
        'total_jobs': len(manager.list_jobs()),
        'total_backups': manager.backup_log.count(),
        'total_size_mb': round(total_size / 1024 / 1024, 2),
        'next_job': next_job_info,
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped'
    })


@bp.route('/scheduler-diagnostics', methods=['GET'])
def get_scheduler_diagnostics_endpoint():
    """
    Get detailed scheduler diagnostics.

    Returns:
        JSON with scheduler state, jobs, and health information
    """
    return jsonify(get_scheduler_diagnostics())
