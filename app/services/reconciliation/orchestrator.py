"""
Reconciliation Orchestrator - one call-sheet row in, one logical action out.

Scenario per row (phone resolved through PhoneMatcher):
    A  no lead                      -> create lead, check eligibility, book today
    B  lead, nothing upcoming/today -> book today
    C  lead, upcoming on other date -> move it to today's nearest slot
    D  lead, appointment today      -> apply the row's outcome to the latest one
A lead already found ineligible is never booked by B or C.
Reloan rows whose phone belongs to a borrower update the borrower's
appointment for today instead.

Rows for the same phone are serialized with an in-process lock and a
row lock on the lead, so "is there an upcoming appointment?" and "create
one" cannot interleave. Every step commits on its own; a failed step is
rolled back and reported, earlier committed steps stay.
"""

import asyncio
import logging
import weakref
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.lead import Lead
from app.models.statuses import AppointmentStatus, LeadStatus, LoanCode
from app.services.reconciliation.actions import ActionKind, ReconciliationAction
from app.services.reconciliation.appointment_state import AppointmentStateMachine
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.eligibility import EligibilityChecker
from app.services.reconciliation.errors import (
    EligibilityCheckError,
    ErrorKind,
    NoSlotAvailableError,
    NotifyError,
    ReconciliationError,
)
from app.services.reconciliation.lead_status import (
    Projection,
    loan_notes_for,
    loan_status_for,
    project_call_outcome,
    project_live_miss,
)
from app.services.reconciliation.notifications import (
    APPOINTMENT_CREATED,
    LOAN_REJECTED,
    NotificationSink,
)
from app.services.reconciliation.phone_matcher import PhoneMatcher, format_phone, mask_phone
from app.services.reconciliation.row_normalizer import CallOutcome
from app.services.reconciliation.stores import (
    AppointmentStore,
    BorrowerStore,
    LeadStore,
    TimeslotStore,
)
from app.services.reconciliation.timeslot_allocator import TimeslotAllocator

logger = logging.getLogger(__name__)

_phone_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(phone_key: str) -> asyncio.Lock:
    lock = _phone_locks.get(phone_key)
    if lock is None:
        lock = asyncio.Lock()
        _phone_locks[phone_key] = lock
    return lock


def _status(value) -> Optional[str]:
    return getattr(value, "value", value)


def _marked_ineligible(lead: Lead) -> bool:
    return bool(lead.eligibility_checked) and lead.eligibility_status == LeadStatus.unqualified.value


class ReconciliationOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        eligibility: EligibilityChecker,
        notifier: NotificationSink,
        agent_id: Optional[str] = None,
        live_threshold_hours: Optional[float] = None,
        lookahead_days: Optional[int] = None,
        default_source: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.eligibility = eligibility
        self.notifier = notifier
        self.agent_id = agent_id or settings.AGENT_USER_ID
        self.live_threshold_hours = (
            settings.LIVE_THRESHOLD_HOURS if live_threshold_hours is None else live_threshold_hours
        )
        self.lookahead_days = settings.SLOT_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
        self.default_source = default_source or settings.DEFAULT_LEAD_SOURCE

        self.matcher = PhoneMatcher(db)
        self.leads = LeadStore(db)
        self.borrowers = BorrowerStore(db)
        self.appointments = AppointmentStore(db)
        self.borrower_appointments = AppointmentStore.for_borrowers(db)
        self.allocator = TimeslotAllocator(TimeslotStore(db))
        self.machine = AppointmentStateMachine(clock, self.allocator)

    async def reconcile(self, outcome: CallOutcome) -> list[ReconciliationAction]:
        async with _lock_for(outcome.phone):
            if outcome.is_reloan:
                borrower_id = await self.matcher.find_borrower_id(outcome.phone)
                if borrower_id is not None:
                    return [await self._update_borrower_appointment(borrower_id, outcome)]

            lead_id = await self.matcher.find_lead_id(outcome.phone)
            lead = await self.leads.get(lead_id, for_update=True) if lead_id is not None else None
            if lead is None:
                return await self._create_lead(outcome)

            start, end = self.clock.day_bounds_utc()
            todays = await self.appointments.on_day(lead.id, start, end)
            if todays:
                return [await self._update_todays_appointment(lead, todays[0], outcome)]

            if _marked_ineligible(lead):
                lead_id, notes = lead.id, lead.eligibility_notes
                await self.db.rollback()
                return [self._not_eligible(lead_id, notes, outcome)]

            upcoming = await self.appointments.upcoming_for_owner(lead.id)
            if upcoming:
                return [await self._move_appointment(lead, upcoming[0], outcome)]

            return [await self._create_appointment(lead, outcome)]

    # Scenario A

    async def _create_lead(self, outcome: CallOutcome) -> list[ReconciliationAction]:
        lead = await self.leads.create(
            phone_number=format_phone(outcome.phone),
            full_name=outcome.name,
            email=outcome.email,
            source=outcome.source or self.default_source,
            lead_type=outcome.loan_type.value,
            amount=outcome.amount,
            employment_status=outcome.employment_type,
            loan_purpose=outcome.loan_purpose,
            status=LeadStatus.new,
            created_by=self.agent_id,
            updated_by=self.agent_id,
        )
        await self.db.commit()
        lead_id = lead.id
        logger.info(f"Row {outcome.row_number}: created lead {lead_id} for {mask_phone(outcome.phone)}")

        actions = [
            ReconciliationAction(
                kind=ActionKind.create_lead,
                success=True,
                message=f"Created lead {lead_id}",
                row_number=outcome.row_number,
                lead_id=lead_id,
                lead_status_after=LeadStatus.new,
            )
        ]

        try:
            result = await self.eligibility.check(lead)
        except SQLAlchemyError:
            raise
        except Exception as e:
            if isinstance(e, EligibilityCheckError):
                error = e
            else:
                logger.error(f"Row {outcome.row_number}: eligibility check crashed for lead {lead_id}", exc_info=True)
                error = EligibilityCheckError(f"Eligibility check error: {type(e).__name__}")
            lead.eligibility_checked = False
            lead.eligibility_notes = error.message
            await self.db.commit()
            actions.append(
                ReconciliationAction.failed(
                    ActionKind.create_appointment, error, row_number=outcome.row_number, lead_id=lead_id
                )
            )
            return actions

        lead.eligibility_checked = True
        lead.eligibility_status = result.status.value
        lead.eligibility_notes = result.notes
        await self.db.commit()

        if not result.eligible:
            actions.append(self._not_eligible(lead_id, result.notes, outcome))
            return actions

        actions.append(await self._create_appointment(lead, outcome))
        return actions

    def _not_eligible(self, lead_id: int, notes: Optional[str], outcome: CallOutcome) -> ReconciliationAction:
        return ReconciliationAction(
            kind=ActionKind.create_appointment,
            success=False,
            message=f"Lead {lead_id} not eligible: {notes}",
            row_number=outcome.row_number,
            lead_id=lead_id,
        )

    # Scenario B

    async def _create_appointment(self, lead: Lead, outcome: CallOutcome) -> ReconciliationAction:
        lead_id = lead.id
        lead_before = _status(lead.status)
        today = self.clock.today()

        try:
            slot = await self.allocator.reserve_nearest(today, self.clock.local_time(), self.lookahead_days)
            appointment = await self.appointments.create(
                lead_id,
                slot,
                self.clock,
                self.agent_id,
                lead_source=lead.source or self.default_source,
                created_by=self.agent_id,
                notes=f"Booked from call sheet row {outcome.row_number}",
            )
            projection = project_call_outcome(outcome.code, outcome.uw_filled)
            if projection is not None:
                self._apply_projection(appointment, lead, self.leads, projection, outcome)
            await self.db.commit()
        except ReconciliationError as e:
            return await self._fail(ActionKind.create_appointment, e, outcome, lead_id=lead_id)

        notes = []
        if slot.date == today:
            notes.append(await self._notify(APPOINTMENT_CREATED, self._appointment_payload(lead, appointment)))
        if projection is not None and projection.notify_rejection:
            notes.append(await self._notify(LOAN_REJECTED, self._rejection_payload(lead, appointment, outcome)))

        return self._success(
            ActionKind.create_appointment,
            f"Created appointment {appointment.id} at {slot.date} {slot.start_time:%H:%M}",
            outcome,
            notes,
            lead_id=lead_id,
            appointment_id=appointment.id,
            appointment_status_after=appointment.status,
            lead_status_before=lead_before,
            lead_status_after=lead.status,
        )

    # Scenario C

    async def _move_appointment(self, lead: Lead, appointment, outcome: CallOutcome) -> ReconciliationAction:
        lead_id, appointment_id = lead.id, appointment.id
        lead_before = _status(lead.status)
        appointment_before = _status(appointment.status)
        previous_start = self.clock.to_local(appointment.start_datetime)

        try:
            old_slot_id = await self.appointments.held_timeslot_id(appointment_id)
            slot = await self.allocator.reserve_nearest(
                self.clock.today(), self.clock.local_time(), self.lookahead_days
            )
            if old_slot_id is not None:
                await self.allocator.release(old_slot_id)
            await self.appointments.reschedule(appointment, slot, self.clock, self.agent_id)
            projection = project_call_outcome(outcome.code, outcome.uw_filled)
            if projection is not None:
                self._apply_projection(appointment, lead, self.leads, projection, outcome)
            await self.db.commit()
        except ReconciliationError as e:
            return await self._fail(
                ActionKind.move_appointment, e, outcome, lead_id=lead_id, appointment_id=appointment_id
            )

        notes = []
        if projection is not None and projection.notify_rejection:
            notes.append(await self._notify(LOAN_REJECTED, self._rejection_payload(lead, appointment, outcome)))

        return self._success(
            ActionKind.move_appointment,
            f"Moved appointment {appointment_id} from {previous_start:%Y-%m-%d %H:%M} "
            f"to {slot.date} {slot.start_time:%H:%M}",
            outcome,
            notes,
            lead_id=lead_id,
            appointment_id=appointment_id,
            appointment_status_before=appointment_before,
            appointment_status_after=appointment.status,
            lead_status_before=lead_before,
            lead_status_after=lead.status,
        )

    # Scenario D

    async def _update_todays_appointment(self, lead: Lead, appointment, outcome: CallOutcome) -> ReconciliationAction:
        reopen_signal = outcome.uw_filled or outcome.code is LoanCode.P
        if (
            appointment.status == AppointmentStatus.missed
            and reopen_signal
            and await self.appointments.has_other_active(appointment)
        ):
            upcoming = await self.appointments.upcoming_for_owner(lead.id)
            if upcoming:
                return await self._move_appointment(lead, upcoming[0], outcome)
            return await self._create_appointment(lead, outcome)

        return await self._update_in_place(
            ActionKind.update_appointment,
            appointment,
            lead,
            self.leads,
            self.appointments,
            outcome,
            lead_id=lead.id,
        )

    async def _update_borrower_appointment(self, borrower_id: int, outcome: CallOutcome) -> ReconciliationAction:
        borrower = await self.borrowers.get(borrower_id, for_update=True)
        start, end = self.clock.day_bounds_utc()
        todays = await self.borrower_appointments.on_day(borrower_id, start, end)
        if borrower is None or not todays:
            await self.db.rollback()
            return ReconciliationAction(
                kind=ActionKind.update_borrower_appointment,
                success=False,
                message=f"No reloan appointment today for borrower {borrower_id}",
                row_number=outcome.row_number,
                borrower_id=borrower_id,
            )

        return await self._update_in_place(
            ActionKind.update_borrower_appointment,
            todays[0],
            borrower,
            self.borrowers,
            self.borrower_appointments,
            outcome,
            borrower_id=borrower_id,
        )

    async def _update_in_place(
        self,
        kind: ActionKind,
        appointment,
        owner,
        owner_store,
        appointments: AppointmentStore,
        outcome: CallOutcome,
        **ids,
    ) -> ReconciliationAction:
        appointment_id = appointment.id
        appointment_before = AppointmentStatus(appointment.status)
        owner_before = _status(owner.status)
        projection = project_call_outcome(outcome.code, outcome.uw_filled)

        try:
            if appointment_before is AppointmentStatus.missed and (
                outcome.uw_filled or outcome.code is LoanCode.P
            ):
                await self.machine.reopen(appointment, appointments, self.agent_id)

            if projection is not None:
                if appointment.status == AppointmentStatus.missed:
                    # Outcome recorded against a miss that stays a miss
                    self._record_loan_outcome(appointment, owner, outcome)
                    owner_store.set_status(owner, projection.lead_status, self.agent_id)
                else:
                    self._apply_projection(appointment, owner, owner_store, projection, outcome)
            elif appointment_before is AppointmentStatus.upcoming:
                missed = self.machine.mark_missed(appointment, self.live_threshold_hours, self.agent_id)
                if missed.changed:
                    owner_store.set_status(owner, project_live_miss().lead_status, self.agent_id)
            await self.db.commit()
        except ReconciliationError as e:
            return await self._fail(kind, e, outcome, appointment_id=appointment_id, **ids)

        notes = []
        if projection is not None and projection.notify_rejection:
            notes.append(await self._notify(LOAN_REJECTED, self._rejection_payload(owner, appointment, outcome)))

        appointment_after = AppointmentStatus(appointment.status)
        owner_after = _status(owner.status)
        if appointment_after == appointment_before and owner_after == owner_before and projection is None:
            message = f"Appointment {appointment_id} unchanged ({appointment_before.value}, no outcome yet)"
        else:
            message = (
                f"Appointment {appointment_id} {appointment_before.value} -> {appointment_after.value}, "
                f"status {owner_before} -> {owner_after}"
            )

        return self._success(
            kind,
            message,
            outcome,
            notes,
            appointment_id=appointment_id,
            appointment_status_before=appointment_before,
            appointment_status_after=appointment_after,
            lead_status_before=owner_before,
            lead_status_after=owner_after,
            **ids,
        )

    # Helpers

    def _record_loan_outcome(self, appointment, owner, outcome: CallOutcome) -> None:
        loan_status = loan_status_for(outcome.code)
        if loan_status is None:
            return
        notes = loan_notes_for(outcome.code, outcome.rs_reason, outcome.rs_detail)
        appointment.loan_status = loan_status
        appointment.loan_notes = notes
        owner.loan_status = loan_status
        owner.loan_notes = notes

    def _apply_projection(self, appointment, owner, owner_store, projection: Projection, outcome: CallOutcome) -> None:
        self._record_loan_outcome(appointment, owner, outcome)
        self.machine.transition(appointment, projection.appointment_status, self.agent_id)
        owner_store.set_status(owner, projection.lead_status, self.agent_id)

    async def _notify(self, event: str, payload: dict[str, Any]) -> Optional[str]:
        try:
            await self.notifier.send(event, payload)
        except NotifyError as e:
            logger.warning(f"{event} notification failed: {e.message}")
            return f"{ErrorKind.external_notify_failed.value}: {e.message}"
        except Exception as e:
            logger.error(f"{event} notification crashed: {type(e).__name__}", exc_info=True)
            return f"{ErrorKind.external_notify_failed.value}: {type(e).__name__}"
        return None

    def _appointment_payload(self, lead: Lead, appointment) -> dict[str, Any]:
        return {
            "lead_id": lead.id,
            "appointment_id": appointment.id,
            "phone_number": lead.phone_number,
            "name": lead.full_name,
            "agent_id": appointment.agent_id,
            "start_datetime": self.clock.ensure_utc(appointment.start_datetime).isoformat(),
            "timestamp": self.clock.now().isoformat(),
        }

    def _rejection_payload(self, owner, appointment, outcome: CallOutcome) -> dict[str, Any]:
        is_borrower = not isinstance(owner, Lead)
        return {
            "phone_number": format_phone(outcome.phone),
            "borrower_id" if is_borrower else "lead_id": owner.id,
            "name": outcome.name or owner.full_name,
            "appointment_id": appointment.id,
            "code": LoanCode.R.value,
            "appointment_type": "reloan" if is_borrower else "new_loan",
            "timestamp": self.clock.now().isoformat(),
        }

    def _success(self, kind: ActionKind, message: str, outcome: CallOutcome, notes: list, **fields) -> ReconciliationAction:
        notes = [n for n in notes if n]
        if notes:
            message = f"{message} ({'; '.join(notes)})"
        return ReconciliationAction(
            kind=kind, success=True, message=message, row_number=outcome.row_number, **fields
        )

    async def _fail(self, kind: ActionKind, error: ReconciliationError, outcome: CallOutcome, **ids) -> ReconciliationAction:
        await self.db.rollback()
        logger.warning(f"Row {outcome.row_number}: {kind.value} failed ({error.kind.value}): {error.message}")
        return ReconciliationAction.failed(kind, error, row_number=outcome.row_number, **ids)
