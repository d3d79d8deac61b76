"""Generate bookable timeslots from calendar settings."""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.timeslot import CalendarException, CalendarSettings, Timeslot

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DAYS = [1, 2, 3, 4, 5]  # Monday-Friday, 0 = Sunday
DEFAULT_START = time(9, 0)
DEFAULT_END = time(17, 0)
DEFAULT_SLOT_MINUTES = 60


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def slot_times(start: time, end: time, minutes: int) -> list[tuple[time, time]]:
    """Consecutive [start, end) pairs; a slot that would run past `end` is dropped."""
    anchor = date(2000, 1, 1)
    cursor = datetime.combine(anchor, start)
    limit = datetime.combine(anchor, end)
    step = timedelta(minutes=minutes)
    slots = []
    while cursor + step <= limit:
        slots.append((cursor.time(), (cursor + step).time()))
        cursor += step
    return slots


class TimeslotGenerator:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate(self, settings_id: int, start_date: date, end_date: date) -> int:
        """Create missing slots for every open working day in [start_date, end_date]. Returns the count created."""
        calendar = await self.db.get(CalendarSettings, settings_id)
        if calendar is None:
            raise LookupError(f"Calendar settings {settings_id} not found")

        working_days = set(calendar.working_days or DEFAULT_WORKING_DAYS)
        minutes = calendar.slot_duration_minutes or DEFAULT_SLOT_MINUTES
        if minutes <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        capacity = calendar.default_max_capacity or 1
        daily = slot_times(
            calendar.daily_start_time or DEFAULT_START,
            calendar.daily_end_time or DEFAULT_END,
            minutes,
        )

        closed_result = await self.db.execute(
            select(CalendarException.date).where(
                CalendarException.date >= start_date,
                CalendarException.date <= end_date,
                CalendarException.is_closed == True,  # noqa: E712
            )
        )
        closed = set(closed_result.scalars().all())

        existing_result = await self.db.execute(
            select(Timeslot.date, Timeslot.start_time).where(
                Timeslot.calendar_setting_id == settings_id,
                Timeslot.date >= start_date,
                Timeslot.date <= end_date,
            )
        )
        existing = {(row.date, row.start_time) for row in existing_result.all()}

        created = 0
        day = start_date
        while day <= end_date:
            if sunday_based_weekday(day) in working_days and day not in closed:
                for slot_start, slot_end in daily:
                    if (day, slot_start) in existing:
                        continue
                    self.db.add(
                        Timeslot(
                            date=day,
                            start_time=slot_start,
                            end_time=slot_end,
                            max_capacity=capacity,
                            occupied_count=0,
                            calendar_setting_id=settings_id,
                            is_disabled=False,
                        )
                    )
                    created += 1
            day += timedelta(days=1)

        await self.db.commit()
        logger.info(f"Generated {created} timeslots for {start_date} to {end_date} (settings {settings_id})")
        return created
