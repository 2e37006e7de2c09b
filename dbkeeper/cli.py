"""
Flask CLI commands for operating backups without the HTTP API.

Usage:
    flask --app run backups run-now [JOB_ID]
    flask --app run backups run-due
    flask --app run backups list-jobs
    flask --app run backups enforce-retention
"""

import click
from flask.cli import AppGroup

from dbkeeper.backup.manager import get_backup_manager


backups_cli = AppGroup('backups', help='Run and inspect database backups.')


@backups_cli.command('run-now')
@click.argument('job_id', required=False)
def run_now(job_id):
    """Run a manual backup, or JOB_ID immediately if given."""
    manager = get_backup_manager()

    try:
        if job_id:
            record = manager.run_job_now(job_id)
        else:
            record = manager.trigger_manual_backup()
    except Exception as e:
        raise click.ClickException(str(e))

    click.echo(f"Backup written: {record.file_name} ({record.file_size} bytes)")


@backups_cli.command('run-due')
def run_due():
    """Run every job whose next run has passed (one ticker pass)."""
    summary = get_backup_manager().run_due_jobs()

    click.echo(f"Checked {summary['jobs_checked']} jobs, ran {summary['jobs_run']}")
    for error in summary['errors']:
        click.echo(error, err=True)

    if summary['errors']:
        raise SystemExit(1)


@backups_cli.command('list-jobs')
def list_jobs():
    """List backup jobs and their next run."""
    jobs = get_backup_manager().list_jobs()

    if not jobs:
        click.echo('No backup jobs configured')
        return

    for job in jobs:
        next_run = job.next_run.isoformat(sep=' ') if job.next_run else 'N/A'
        click.echo(f"{job.id}  {job.label}  {job.schedule.value}  keep={job.max_backups}  next={next_run}")


@backups_cli.command('enforce-retention')
def enforce_retention():
    """Delete backups beyond every job's cap."""
    summary = get_backup_manager().enforce_retention()

    click.echo(f"Processed {summary['jobs_processed']} jobs, deleted {summary['deleted']} backups")
    for error in summary['errors']:
        click.echo(error, err=True)
