"""
Persistence seams used by the reconciliation engine.

Thin wrappers over one AsyncSession. They flush but never commit; the
orchestrator and sweepers own transaction boundaries.
"""

import logging
from datetime import date, datetime, time
from typing import Iterable, Optional

from sqlalchemy import select, update, delete, exists, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import Appointment, AppointmentTimeslot
from app.models.borrower import Borrower, BorrowerAppointment, BorrowerAppointmentTimeslot
from app.models.lead import Lead
from app.models.statuses import AppointmentStatus, LeadStatus, ENGINE_LEAD_STATUSES
from app.models.timeslot import Timeslot, CalendarException
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.errors import IllegalTransitionError

logger = logging.getLogger(__name__)


def _check_engine_status(entity: str, current, target: LeadStatus) -> None:
    if target not in ENGINE_LEAD_STATUSES:
        raise IllegalTransitionError(entity, current, target, "status is reserved for agents")


class LeadStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, lead_id: int, for_update: bool = False) -> Optional[Lead]:
        stmt = select(Lead).where(Lead.id == lead_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields) -> Lead:
        lead = Lead(**fields)
        self.db.add(lead)
        await self.db.flush()
        return lead

    def set_status(self, lead: Lead, status: LeadStatus, actor: str) -> bool:
        """Write an engine-licensed status. Returns False when unchanged."""
        _check_engine_status("lead", lead.status, status)
        if lead.status == status:
            return False
        lead.status = status
        lead.updated_by = actor
        return True


class BorrowerStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, borrower_id: int, for_update: bool = False) -> Optional[Borrower]:
        stmt = select(Borrower).where(Borrower.id == borrower_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def set_status(self, borrower: Borrower, status: LeadStatus, actor: str) -> bool:
        _check_engine_status("borrower", borrower.status, status)
        if borrower.status == status.value:
            return False
        borrower.status = status.value
        borrower.updated_by = actor
        return True


class AppointmentStore:
    """Appointment queries for one owner type (leads or borrowers)."""

    def __init__(
        self,
        db: AsyncSession,
        model=Appointment,
        owner_column: str = "lead_id",
        link_model=AppointmentTimeslot,
        link_column: str = "appointment_id",
    ):
        self.db = db
        self.model = model
        self.owner_column = owner_column
        self.link_model = link_model
        self.link_column = link_column

    @classmethod
    def for_borrowers(cls, db: AsyncSession) -> "AppointmentStore":
        return cls(
            db,
            model=BorrowerAppointment,
            owner_column="borrower_id",
            link_model=BorrowerAppointmentTimeslot,
            link_column="borrower_appointment_id",
        )

    @property
    def _owner(self):
        return getattr(self.model, self.owner_column)

    @property
    def _link_owner(self):
        return getattr(self.link_model, self.link_column)

    def owner_id(self, appointment) -> int:
        return getattr(appointment, self.owner_column)

    async def get(self, appointment_id: int):
        return await self.db.get(self.model, appointment_id, populate_existing=True)

    async def on_day(self, owner_id: int, start: datetime, end: datetime) -> list:
        """Non-cancelled appointments starting in [start, end), latest first."""
        result = await self.db.execute(
            select(self.model)
            .where(
                self._owner == owner_id,
                self.model.status != AppointmentStatus.cancelled,
                self.model.start_datetime >= start,
                self.model.start_datetime < end,
            )
            .order_by(self.model.start_datetime.desc(), self.model.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def upcoming_for_owner(self, owner_id: int) -> list:
        result = await self.db.execute(
            select(self.model)
            .where(self._owner == owner_id, self.model.status == AppointmentStatus.upcoming)
            .order_by(self.model.start_datetime.desc(), self.model.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def ids_starting_between(self, status: AppointmentStatus, start: datetime, end: datetime) -> list[int]:
        result = await self.db.execute(
            select(self.model.id)
            .where(
                self.model.status == status,
                self.model.start_datetime >= start,
                self.model.start_datetime < end,
            )
            .order_by(self.model.start_datetime, self.model.id)
        )
        return list(result.scalars().all())

    async def has_other_active(self, appointment) -> bool:
        """True when the owner has a newer non-cancelled appointment, or any other upcoming one."""
        other = self.model
        stmt = select(
            exists().where(
                other.id != appointment.id,
                self._owner == self.owner_id(appointment),
                or_(
                    and_(other.id > appointment.id, other.status != AppointmentStatus.cancelled),
                    other.status == AppointmentStatus.upcoming,
                ),
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def create(self, owner_id: int, slot: Timeslot, clock: Clock, agent_id: str, **fields):
        appointment = self.model(
            **{self.owner_column: owner_id},
            agent_id=agent_id,
            status=AppointmentStatus.upcoming,
            start_datetime=clock.at_local(slot.date, slot.start_time),
            end_datetime=clock.at_local(slot.date, slot.end_time),
            updated_by=agent_id,
            **fields,
        )
        self.db.add(appointment)
        await self.db.flush()
        self.db.add(self.link_model(**{self.link_column: appointment.id}, timeslot_id=slot.id, primary=True))
        await self.db.flush()
        return appointment

    async def held_timeslot_id(self, appointment_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(self.link_model.timeslot_id)
            .where(self._link_owner == appointment_id)
            .order_by(self.link_model.primary.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def reschedule(self, appointment, slot: Timeslot, clock: Clock, actor: str) -> None:
        """Point an appointment at a new slot. Capacity is the caller's concern."""
        appointment.start_datetime = clock.at_local(slot.date, slot.start_time)
        appointment.end_datetime = clock.at_local(slot.date, slot.end_time)
        appointment.updated_by = actor
        await self.db.execute(delete(self.link_model).where(self._link_owner == appointment.id))
        self.db.add(self.link_model(**{self.link_column: appointment.id}, timeslot_id=slot.id, primary=True))
        await self.db.flush()


class TimeslotStore:
    """Slot reads plus the two atomic capacity primitives."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, slot_id: int) -> Optional[Timeslot]:
        return await self.db.get(Timeslot, slot_id, populate_existing=True)

    async def first_available(
        self,
        day: date,
        from_time: Optional[time] = None,
        exclude_ids: Iterable[int] = (),
    ) -> Optional[Timeslot]:
        stmt = select(Timeslot).where(
            Timeslot.date == day,
            Timeslot.is_disabled == False,  # noqa: E712
            Timeslot.occupied_count < Timeslot.max_capacity,
        )
        if from_time is not None:
            stmt = stmt.where(Timeslot.end_time > from_time)
        exclude_ids = list(exclude_ids)
        if exclude_ids:
            stmt = stmt.where(Timeslot.id.not_in(exclude_ids))
        stmt = stmt.order_by(Timeslot.start_time, Timeslot.id).limit(1).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def increment_if_available(self, slot_id: int) -> bool:
        result = await self.db.execute(
            update(Timeslot)
            .where(
                Timeslot.id == slot_id,
                Timeslot.is_disabled == False,  # noqa: E712
                Timeslot.occupied_count < Timeslot.max_capacity,
            )
            .values(occupied_count=Timeslot.occupied_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def decrement_if_occupied(self, slot_id: int) -> bool:
        result = await self.db.execute(
            update(Timeslot)
            .where(Timeslot.id == slot_id, Timeslot.occupied_count > 0)
            .values(occupied_count=Timeslot.occupied_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def is_closed(self, day: date) -> bool:
        result = await self.db.execute(
            select(
                exists().where(CalendarException.date == day, CalendarException.is_closed == True)  # noqa: E712
            )
        )
        return bool(result.scalar())
