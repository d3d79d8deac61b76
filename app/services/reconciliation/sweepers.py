"""
Time-driven sweeps over today's appointments.

TimeoutSweeper runs during the day: an upcoming appointment that is past
the threshold becomes missed and the lead goes to follow_up, so an agent
can still recover it.

EndOfDaySweeper runs once in the evening: done appointments re-derive the
lead status from their persisted loan status, and anything still upcoming
past the threshold is finalized as missed with the lead at missed/RS.
Both sweeps cover lead and borrower appointments; the done pass reads
lead appointments only.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.statuses import AppointmentStatus
from app.services.reconciliation.actions import ActionKind, ReconciliationAction
from app.services.reconciliation.appointment_state import AppointmentStateMachine
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.errors import ReconciliationError
from app.services.reconciliation.lead_status import (
    Projection,
    project_end_of_day_miss,
    project_final_status,
    project_timeout_miss,
)
from app.services.reconciliation.stores import AppointmentStore, BorrowerStore, LeadStore

logger = logging.getLogger(__name__)


def _status(value) -> Optional[str]:
    return getattr(value, "value", value)


class _Sweeper:
    kind: ActionKind

    def __init__(self, db: AsyncSession, clock: Clock, agent_id: Optional[str] = None):
        self.db = db
        self.clock = clock
        self.agent_id = agent_id or settings.AGENT_USER_ID
        self.machine = AppointmentStateMachine(clock)
        self.leads = LeadStore(db)
        self.borrowers = BorrowerStore(db)
        self.appointments = AppointmentStore(db)
        self.borrower_appointments = AppointmentStore.for_borrowers(db)

    async def _owner(self, appointments: AppointmentStore, appointment):
        owner_id = appointments.owner_id(appointment)
        if appointments.model is self.appointments.model:
            return self.leads, await self.leads.get(owner_id, for_update=True), {"lead_id": owner_id}
        return self.borrowers, await self.borrowers.get(owner_id, for_update=True), {"borrower_id": owner_id}

    async def _miss_overdue(
        self,
        appointments: AppointmentStore,
        projection: Projection,
        threshold_hours: float,
    ) -> list[ReconciliationAction]:
        start, end = self.clock.day_bounds_utc()
        actions = []
        for appointment_id in await appointments.ids_starting_between(AppointmentStatus.upcoming, start, end):
            try:
                appointment = await appointments.get(appointment_id)
                if appointment is None or not self.machine.is_past_threshold(appointment, threshold_hours):
                    continue
                owner_store, owner, ids = await self._owner(appointments, appointment)
                owner_before = _status(owner.status) if owner is not None else None

                result = self.machine.mark_missed(appointment, threshold_hours, self.agent_id)
                if owner is not None:
                    owner_store.set_status(owner, projection.lead_status, self.agent_id)
                await self.db.commit()
            except ReconciliationError as e:
                await self.db.rollback()
                logger.warning(f"Appointment {appointment_id}: {self.kind.value} failed: {e.message}")
                actions.append(ReconciliationAction.failed(self.kind, e, appointment_id=appointment_id))
                continue

            actions.append(
                ReconciliationAction(
                    kind=self.kind,
                    success=True,
                    message=(
                        f"Appointment {appointment_id} marked missed "
                        f"({self.clock.hours_since(appointment.start_datetime):.1f}h past start)"
                    ),
                    appointment_id=appointment_id,
                    appointment_status_before=result.before,
                    appointment_status_after=result.after,
                    lead_status_before=owner_before,
                    lead_status_after=_status(owner.status) if owner is not None else None,
                    **ids,
                )
            )
        return actions


class TimeoutSweeper(_Sweeper):
    kind = ActionKind.timeout_appointment

    async def run(self, threshold_hours: Optional[float] = None) -> list[ReconciliationAction]:
        if threshold_hours is None:
            threshold_hours = settings.TIME_SWEEP_THRESHOLD_HOURS
        logger.info(f"Starting timeout sweep for {self.clock.today()} (threshold {threshold_hours}h)")

        actions = await self._miss_overdue(self.appointments, project_timeout_miss(), threshold_hours)
        actions += await self._miss_overdue(self.borrower_appointments, project_timeout_miss(), threshold_hours)

        errors = sum(1 for a in actions if not a.success)
        logger.info(f"Timeout sweep complete. Processed: {len(actions) - errors}, Errors: {errors}")
        return actions


class EndOfDaySweeper(_Sweeper):
    kind = ActionKind.final_status_update

    async def run(self, threshold_hours: Optional[float] = None) -> list[ReconciliationAction]:
        if threshold_hours is None:
            threshold_hours = settings.LIVE_THRESHOLD_HOURS
        logger.info(f"Starting end-of-day finalization for {self.clock.today()}")

        actions = await self._finalize_done()
        actions += await self._miss_overdue(self.appointments, project_end_of_day_miss(), threshold_hours)
        actions += await self._miss_overdue(self.borrower_appointments, project_end_of_day_miss(), threshold_hours)

        errors = sum(1 for a in actions if not a.success)
        logger.info(f"End-of-day finalization complete. Processed: {len(actions) - errors}, Errors: {errors}")
        return actions

    async def _finalize_done(self) -> list[ReconciliationAction]:
        start, end = self.clock.day_bounds_utc()
        actions = []
        for appointment_id in await self.appointments.ids_starting_between(AppointmentStatus.done, start, end):
            try:
                appointment = await self.appointments.get(appointment_id)
                target = project_final_status(appointment.loan_status)
                if target is None:
                    continue
                lead = await self.leads.get(appointment.lead_id, for_update=True)
                if lead is None or lead.status == target:
                    await self.db.rollback()
                    continue

                lead_id, lead_before = lead.id, _status(lead.status)
                self.leads.set_status(lead, target, self.agent_id)
                await self.db.commit()
            except ReconciliationError as e:
                await self.db.rollback()
                logger.warning(f"Appointment {appointment_id}: final status update failed: {e.message}")
                actions.append(ReconciliationAction.failed(self.kind, e, appointment_id=appointment_id))
                continue

            logger.info(f"Lead {lead_id}: {lead_before} -> {target.value} from loan status {appointment.loan_status}")
            actions.append(
                ReconciliationAction(
                    kind=self.kind,
                    success=True,
                    message=f"Lead {lead_id} {lead_before} -> {target.value} (loan status {appointment.loan_status})",
                    lead_id=lead_id,
                    appointment_id=appointment_id,
                    appointment_status_before=AppointmentStatus.done,
                    appointment_status_after=AppointmentStatus.done,
                    lead_status_before=lead_before,
                    lead_status_after=target,
                )
            )
        return actions
