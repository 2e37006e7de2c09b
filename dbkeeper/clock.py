"""
Time sources for schedule computation.

All instants are naive local datetimes with whole-second resolution.
"""

from datetime import datetime, timedelta


class LocalClock:
    """Wall clock in local time."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FixedClock:
    """Clock frozen at a settable instant."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime):
        self.current = now

    def advance(self, **delta) -> datetime:
        """Move the clock forward by ``timedelta(**delta)`` and return the new instant."""
        self.current = self.current + timedelta(**delta)
        return self.current
