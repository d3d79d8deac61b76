"""Timeslot capacity and the calendar configuration timeslots are generated from."""

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, Time, DateTime, Text, ForeignKey, JSON,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.sql import func

from app.database import Base


class CalendarSettings(Base):
    """Working pattern used to generate bookable timeslots."""

    __tablename__ = "calendar_settings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    working_days = Column(JSON, default=[1, 2, 3, 4, 5])  # 0 = Sunday
    daily_start_time = Column(Time)
    daily_end_time = Column(Time)
    slot_duration_minutes = Column(Integer, default=60)
    default_max_capacity = Column(Integer, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<CalendarSettings {self.name}>"


class CalendarException(Base):
    """A date overriding the working pattern (holiday, office closure)."""

    __tablename__ = "calendar_exceptions"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    is_closed = Column(Boolean, default=False)
    reason = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Timeslot(Base):
    """Bookable unit of agent capacity. date/start/end are Singapore wall-clock values."""

    __tablename__ = "timeslots"
    __table_args__ = (
        CheckConstraint("occupied_count >= 0", name="ck_timeslot_occupied_non_negative"),
        CheckConstraint("occupied_count <= max_capacity", name="ck_timeslot_within_capacity"),
        UniqueConstraint("date", "start_time", "calendar_setting_id", name="uq_timeslot_date_start"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_capacity = Column(Integer, nullable=False, default=1)
    occupied_count = Column(Integer, nullable=False, default=0)
    calendar_setting_id = Column(Integer, ForeignKey("calendar_settings.id"))
    is_disabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Timeslot {self.date} {self.start_time} {self.occupied_count}/{self.max_capacity}>"

    @property
    def is_full(self) -> bool:
        return (self.occupied_count or 0) >= (self.max_capacity or 0)
