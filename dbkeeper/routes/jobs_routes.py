"""
Backup jobs routes - CRUD operations and immediate execution.
"""

import logging

from flask import Blueprint, jsonify, request

from dbkeeper.backup.compression import CompressionError
from dbkeeper.backup.dump import DumpError
from dbkeeper.backup.jobstore import JobNotFoundError
from dbkeeper.backup.manager import get_backup_manager
from dbkeeper.backup.storage import StorageError
from dbkeeper.models import PersistenceError
from dbkeeper.schedules import JobValidationError, WEEKDAY_NAMES


logger = logging.getLogger(__name__)

bp = Blueprint('jobs', __name__, url_prefix='/api/jobs')


def _job_json(job) -> dict:
    data = job.to_dict()
    data['weekday_name'] = WEEKDAY_NAMES[job.weekday] if job.weekday is not None else None
    return data


@bp.route('/', methods=['GET'])
def list_jobs():
    """
    Get list of all backup jobs.

    Returns:
        JSON array of backup jobs in creation order
    """
    jobs = get_backup_manager().list_jobs()
    return jsonify([_job_json(job) for job in jobs])


@bp.route('/<job_id>', methods=['GET'])
def get_job(job_id):
    """
    Get a single backup job by ID.

    Args:
        job_id: Backup job ID

    Returns:
        JSON with job details
    """
    try:
        job = get_backup_manager().get_job(job_id)
    except JobNotFoundError as e:
        return jsonify({'error': str(e)}), 404

    return jsonify(_job_json(job))


@bp.route('/', methods=['POST'])
def create_job():
    """
    Create a new backup job.

    Request body:
        - label: Job name (required)
        - schedule: 'hourly', 'daily', 'weekly' or 'monthly' (required)
        - time_of_day: 'HH:MM' (required except for hourly)
        - weekday: 0 (Sunday) - 6 (Saturday), weekly only
        - day_of_month: 1-31, monthly only
        - max_backups: Number of backups to keep (required, clamped)

    Returns:
        JSON with created job details
    """
    data = request.get_json(silent=True) or {}

    try:
        job = get_backup_manager().save_job(data)
    except JobValidationError as e:
        return jsonify({'error': str(e)}), 400
    except PersistenceError as e:
        logger.error(f"Failed to create backup job: {e}")
        return jsonify({'error': str(e)}), 500

    return jsonify(_job_json(job)), 201


@bp.route('/<job_id>', methods=['PUT'])
def update_job(job_id):
    """
    Replace an existing backup job's definition.

    Args:
        job_id: Backup job ID

    Request body: Same as create_job

    Returns:
        JSON with updated job details (next_run recomputed)
    """
    data = request.get_json(silent=True) or {}

    try:
        job = get_backup_manager().save_job(data, job_id)
    except JobNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except JobValidationError as e:
        return jsonify({'error': str(e)}), 400
    except PersistenceError as e:
        logger.error(f"Failed to update backup job {job_id}: {e}")
        return jsonify({'error': str(e)}), 500

    return jsonify(_job_json(job))


@bp.route('/<job_id>', methods=['DELETE'])
def delete_job(job_id):
    """
    Delete a backup job. Existing backups of the job are kept.

    Args:
        job_id: Backup job ID

    Returns:
        JSON with success message
    """
    try:
        get_backup_manager().delete_job(job_id)
    except JobNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except PersistenceError as e:
        return jsonify({'error': str(e)}), 500

    return jsonify({'message': 'Backup job deleted successfully'})


@bp.route('/<job_id>/run', methods=['POST'])
def run_job_now(job_id):
    """
    Run a backup job immediately.

    Args:
        job_id: Backup job ID

    Returns:
        JSON with the new backup record
    """
    try:
        record = get_backup_manager().run_job_now(job_id)
    except JobNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except (DumpError, CompressionError, StorageError, PersistenceError) as e:
        return jsonify({'error': str(e)}), 500

    return jsonify(record.to_dict()), 201
