"""
Unit tests for the ``flask backups`` commands (dbkeeper/cli.py).
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

from dbkeeper.backup.dump import DumpError
from dbkeeper.backup.manager import get_backup_manager
from dbkeeper.clock import FixedClock


class TestBackupsCli:

    def test_run_now_manual(self, app, runner):
        result = runner.invoke(args=['backups', 'run-now'])

        assert result.exit_code == 0
        assert 'Backup written: backup-' in result.output
        assert get_backup_manager().backup_log.count() == 1

    def test_run_now_job(self, app, runner, daily_job_data):
        job = get_backup_manager().save_job(daily_job_data)

        result = runner.invoke(args=['backups', 'run-now', job.id])

        assert result.exit_code == 0
        assert 'backup-nightly-' in result.output

    def test_run_now_missing_job(self, runner):
        result = runner.invoke(args=['backups', 'run-now', 'missing'])

        assert result.exit_code != 0
        assert 'not found' in result.output

    @patch('dbkeeper.backup.manager.create_dump_producer')
    def test_run_now_dump_failure(self, mock_create_producer, runner):
        mock_create_producer.return_value = MagicMock(produce=MagicMock(side_effect=DumpError("Access denied")))

        result = runner.invoke(args=['backups', 'run-now'])

        assert result.exit_code != 0
        assert 'Access denied' in result.output

    def test_run_due(self, app, runner, daily_job_data):
        get_backup_manager(clock=FixedClock(datetime(2020, 1, 1, 12, 0))).save_job(daily_job_data)

        result = runner.invoke(args=['backups', 'run-due'])

        assert result.exit_code == 0
        assert 'Checked 1 jobs, ran 1' in result.output

    def test_list_jobs_empty(self, runner):
        result = runner.invoke(args=['backups', 'list-jobs'])

        assert result.exit_code == 0
        assert 'No backup jobs configured' in result.output

    def test_list_jobs(self, app, runner, daily_job_data):
        job = get_backup_manager().save_job(daily_job_data)

        result = runner.invoke(args=['backups', 'list-jobs'])

        assert job.id in result.output
        assert 'Nightly' in result.output
        assert 'keep=7' in result.output

    def test_enforce_retention(self, runner):
        result = runner.invoke(args=['backups', 'enforce-retention'])

        assert result.exit_code == 0
        assert 'Processed 0 jobs, deleted 0 backups' in result.output
