"""
Backup routes - list, run, download and delete backups.
"""

import logging

from flask import Blueprint, jsonify, send_file

from dbkeeper.backup.backuplog import BackupNotFoundError
from dbkeeper.backup.compression import CompressionError
from dbkeeper.backup.dump import DumpError
from dbkeeper.backup.manager import get_backup_manager
from dbkeeper.backup.storage import StorageError, BackupFileNotFound
from dbkeeper.models import PersistenceError


logger = logging.getLogger(__name__)

bp = Blueprint('backups', __name__, url_prefix='/api/backups')


@bp.route('/', methods=['GET'])
def list_backups():
    """
    Get all backups grouped by the schedule type of their job.

    Returns:
        JSON object keyed by hourly, daily, weekly, monthly, manual and
        unknown, each an array of backup records (newest first)
    """
    grouped = get_backup_manager().list_backups()

    return jsonify({
        group: [record.to_dict() for record in records]
        for group, records in grouped.items()
    })


@bp.route('/run', methods=['POST'])
def run_manual_backup():
    """
    Run a manual backup now.

    Returns:
        JSON with the new backup record
    """
    try:
        record = get_backup_manager().trigger_manual_backup()
    except (DumpError, CompressionError, StorageError, PersistenceError) as e:
        logger.error(f"Manual backup failed: {e}")
        return jsonify({'error': str(e)}), 500

    return jsonify(record.to_dict()), 201


@bp.route('/<int:record_id>', methods=['GET'])
def get_backup(record_id):
    """
    Get a single backup record.

    Args:
        record_id: Backup record ID
    """
    try:
        record = get_backup_manager().get_backup(record_id)
    except BackupNotFoundError as e:
        return jsonify({'error': str(e)}), 404

    return jsonify(record.to_dict())


@bp.route('/<int:record_id>', methods=['DELETE'])
def delete_backup(record_id):
    """
    Delete a backup archive and its record.

    Args:
        record_id: Backup record ID

    Returns:
        JSON with success message
    """
    try:
        get_backup_manager().delete_backup(record_id)
    except BackupNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except (StorageError, PersistenceError) as e:
        logger.error(f"Failed to delete backup {record_id}: {e}")
        return jsonify({'error': str(e)}), 500

    return jsonify({'message': 'Backup deleted successfully'})


@bp.route('/<int:record_id>/download', methods=['GET'])
def download_backup(record_id):
    """
    Download a backup archive.

    Args:
        record_id: Backup record ID

    Returns:
        The zip archive as an attachment
    """
    try:
        path = get_backup_manager().get_backup_file_path(record_id)
    except (BackupNotFoundError, BackupFileNotFound) as e:
        return jsonify({'error': str(e)}), 404

    return send_file(path, mimetype='application/zip', as_attachment=True)
