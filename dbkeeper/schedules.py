"""
Recurrence rules for backup jobs.

Computes next-run instants for hourly, daily, weekly and monthly jobs and
validates job definitions coming from the management layer.

All instants are naive local datetimes. A computed next run is never closer
than SAFETY_MARGIN to the instant it was computed at, so a freshly saved job
cannot fire before the ticker has settled.
"""

import calendar
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Optional


SAFETY_MARGIN = timedelta(seconds=300)

# Retention caps per schedule type
MAX_BACKUPS_DAILY = 30
MAX_BACKUPS_OTHER = 12

MAX_LABEL_LENGTH = 200

WEEKDAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


class Schedule(str, Enum):
    """Recurrence type of a backup job."""
    HOURLY = 'hourly'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'


class JobValidationError(ValueError):
    """Raised when a job definition is invalid."""
    pass


@dataclass
class Job:
    """
    A recurring backup definition.

    Attributes:
        id: Stable unique identifier
        label: Human readable name, also used in archive filenames
        schedule: Recurrence type
        time_of_day: Run time; only the minute is used for hourly jobs
        max_backups: Retention cap (already clamped for the schedule)
        weekday: 0-6 with Sunday=0 (weekly jobs only)
        day_of_month: 1-31 (monthly jobs only)
        next_run: Next instant the job is due
    """
    id: str
    label: str
    schedule: Schedule
    time_of_day: time
    max_backups: int
    weekday: Optional[int] = None
    day_of_month: Optional[int] = None
    next_run: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return self.next_run is not None and self.next_run <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'schedule': self.schedule.value,
            'time_of_day': self.time_of_day.strftime('%H:%M'),
            'weekday': self.weekday,
            'day_of_month': self.day_of_month,
            'max_backups': self.max_backups,
            'next_run': self.next_run.isoformat() if self.next_run else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Job':
        next_run = data.get('next_run')
        return cls(
            id=data['id'],
            label=data['label'],
            schedule=Schedule(data['schedule']),
            time_of_day=_parse_time(data['time_of_day']),
            max_backups=int(data['max_backups']),
            weekday=data.get('weekday'),
            day_of_month=data.get('day_of_month'),
            next_run=datetime.fromisoformat(next_run) if next_run else None,
        )


def compute_next_run(job: Job, now: datetime) -> datetime:
    """
    Compute the next instant a job should run.

    Args:
        job: Job definition
        now: Current local time

    Returns:
        Next run instant, never earlier than now + SAFETY_MARGIN
    """
    at = job.time_of_day

    if job.schedule == Schedule.HOURLY:
        candidate = _next_hourly(at.minute, now)
    elif job.schedule == Schedule.DAILY:
        candidate = _next_daily(at, now)
    elif job.schedule == Schedule.WEEKLY:
        candidate = _next_weekly(job.weekday, at, now)
    elif job.schedule == Schedule.MONTHLY:
        candidate = _next_monthly(job.day_of_month, at, now)
    else:
        raise JobValidationError(f"Unknown schedule: {job.schedule}")

    floor = now + SAFETY_MARGIN
    if candidate < floor:
        return floor
    return candidate


def _next_hourly(minute: int, now: datetime) -> datetime:
    top_of_hour = now.replace(minute=0, second=0, microsecond=0)
    if now.minute < minute:
        return top_of_hour.replace(minute=minute)
    return (top_of_hour + timedelta(hours=1)).replace(minute=minute)


def _next_daily(at: time, now: datetime) -> datetime:
    today_run = datetime.combine(now.date(), at)
    if today_run > now:
        return today_run
    return today_run + timedelta(days=1)


def _next_weekly(weekday: int, at: time, now: datetime) -> datetime:
    today_run = datetime.combine(now.date(), at)
    current_weekday = sunday_based_weekday(now)

    days_ahead = weekday - current_weekday
    if days_ahead < 0 or (days_ahead == 0 and today_run <= now):
        days_ahead += 7

    return today_run + timedelta(days=days_ahead)


def _next_monthly(day_of_month: int, at: time, now: datetime) -> datetime:
    this_month_run = _month_run(now.year, now.month, day_of_month, at)
    if this_month_run > now:
        return this_month_run

    if now.month == 12:
        year, month = now.year + 1, 1
    else:
        year, month = now.year, now.month + 1

    return _month_run(year, month, day_of_month, at)


def _month_run(year: int, month: int, day_of_month: int, at: time) -> datetime:
    # Short months clamp to their last day (31 in February -> 28/29)
    last_day = calendar.monthrange(year, month)[1]
    return datetime.combine(date(year, month, min(day_of_month, last_day)), at)


def sunday_based_weekday(moment: datetime) -> int:
    """Weekday of ``moment`` with Sunday=0 ... Saturday=6."""
    return (moment.weekday() + 1) % 7


def clamp_max_backups(schedule: Schedule, max_backups: int) -> int:
    """
    Clamp a retention cap to the limit allowed for a schedule.

    Daily jobs keep at most 30 backups; every other schedule keeps at most 12.

    Raises:
        JobValidationError: If max_backups is not a positive integer
    """
    if max_backups < 1:
        raise JobValidationError("max_backups must be at least 1")

    limit = MAX_BACKUPS_DAILY if schedule == Schedule.DAILY else MAX_BACKUPS_OTHER
    return min(max_backups, limit)


def new_job_id() -> str:
    return uuid.uuid4().hex


def build_job(data: Dict[str, Any], job_id: Optional[str] = None) -> Job:
    """
    Validate a job payload and build a Job from it.

    Args:
        data: Dict with label, schedule, time_of_day, weekday, day_of_month, max_backups
        job_id: Existing job ID when updating, None to generate a new one

    Returns:
        Job without next_run (the caller schedules it)

    Raises:
        JobValidationError: If any field is missing or invalid
    """
    if not isinstance(data, dict):
        raise JobValidationError("Job data must be an object")

    label = data.get('label')
    if not isinstance(label, str) or not label.strip():
        raise JobValidationError("Job label is required")
    label = label.strip()
    if len(label) > MAX_LABEL_LENGTH:
        raise JobValidationError(f"Job label must be at most {MAX_LABEL_LENGTH} characters")

    try:
        schedule = Schedule(data.get('schedule'))
    except ValueError:
        valid = [s.value for s in Schedule]
        raise JobValidationError(f"Invalid schedule. Valid options: {valid}")

    raw_time = data.get('time_of_day')
    if raw_time in (None, ''):
        if schedule != Schedule.HOURLY:
            raise JobValidationError("time_of_day is required")
        time_of_day = time(0, 0)
    else:
        try:
            time_of_day = _parse_time(raw_time)
        except ValueError:
            raise JobValidationError("time_of_day must be formatted as HH:MM")

    weekday = None
    day_of_month = None

    if schedule == Schedule.WEEKLY:
        weekday = _parse_int(data.get('weekday'), 'weekday')
        if not 0 <= weekday <= 6:
            raise JobValidationError("weekday must be between 0 (Sunday) and 6 (Saturday)")
    elif schedule == Schedule.MONTHLY:
        day_of_month = _parse_int(data.get('day_of_month'), 'day_of_month')
        if not 1 <= day_of_month <= 31:
            raise JobValidationError("day_of_month must be between 1 and 31")

    max_backups = clamp_max_backups(schedule, _parse_int(data.get('max_backups'), 'max_backups'))

    return Job(
        id=job_id or new_job_id(),
        label=label,
        schedule=schedule,
        time_of_day=time_of_day,
        max_backups=max_backups,
        weekday=weekday,
        day_of_month=day_of_month,
    )


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return time(value.hour, value.minute)
    if not isinstance(value, str):
        raise ValueError(f"Invalid time: {value!r}")

    parts = value.strip().split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid time: {value!r}")

    # Seconds are accepted for HH:MM:SS input but must be valid, then dropped
    hour, minute, second = (int(part) for part in parts + ['0'] * (3 - len(parts)))
    return time(hour, minute, second).replace(second=0)


def _parse_int(value: Any, field_name: str) -> int:
    if value is None or value == '':
        raise JobValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise JobValidationError(f"{field_name} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise JobValidationError(f"{field_name} must be an integer")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise JobValidationError(f"{field_name} must be an integer")
