"""
Business clock.

All "today" and "how long ago" questions in the reconciliation engine go
through a Clock. Stored timestamps are UTC; business dates and timeslot
wall-clock times are Singapore local (UTC+8).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from app.config import settings


class Clock:
    """Wall clock with a fixed business timezone offset."""

    def __init__(self, utc_offset_hours: Optional[float] = None):
        if utc_offset_hours is None:
            utc_offset_hours = settings.BUSINESS_UTC_OFFSET_HOURS
        self.tz = timezone(timedelta(hours=utc_offset_hours))

    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        return datetime.now(timezone.utc)

    def local_now(self) -> datetime:
        return self.now().astimezone(self.tz)

    def today(self) -> date:
        """Business date: UTC now shifted to local time, truncated."""
        return self.local_now().date()

    def local_time(self) -> time:
        return self.local_now().time().replace(tzinfo=None)

    @staticmethod
    def ensure_utc(value: datetime) -> datetime:
        """Naive values (SQLite round-trips) are taken to be UTC already."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_local(self, value: datetime) -> datetime:
        return self.ensure_utc(value).astimezone(self.tz)

    def local_date_of(self, value: datetime) -> date:
        return self.to_local(value).date()

    def at_local(self, day: date, wall_time: time) -> datetime:
        """UTC instant for a local date and wall-clock time."""
        return datetime.combine(day, wall_time, tzinfo=self.tz).astimezone(timezone.utc)

    def day_bounds_utc(self, day: Optional[date] = None) -> tuple[datetime, datetime]:
        """[start, end) of a local business day, in UTC."""
        day = day or self.today()
        start = self.at_local(day, time.min)
        return start, start + timedelta(days=1)

    def hours_since(self, value: datetime) -> float:
        return (self.now() - self.ensure_utc(value)).total_seconds() / 3600


class FixedClock(Clock):
    """Clock pinned to a given instant. Used by tests and manual replays."""

    def __init__(self, current: datetime, utc_offset_hours: Optional[float] = None):
        super().__init__(utc_offset_hours)
        self._current = self.ensure_utc(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = self.ensure_utc(current)

    def advance(self, **delta) -> None:
        self._current = self._current + timedelta(**delta)
