"""
Appointment API endpoints.

The status-update webhook is called by the call-sheet automation after
every sheet edit (live), by the evening job (end_of_day), and manually
through GET for a time-only sweep.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from sqlalchemy.exc import InterfaceError, OperationalError

from app.api.deps import BusinessClock, DbSession, Eligibility, Notifier, resolve_acting_user
from app.exceptions import NotFoundError, BusinessRuleError, ServiceUnavailableError
from app.models.appointment import Appointment
from app.models.statuses import AppointmentStatus
from app.schemas.status_update import (
    AppointmentCancelResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from app.services.reconciliation.appointment_state import AppointmentStateMachine
from app.services.reconciliation.batch_runner import BatchRunner, RunMode
from app.services.reconciliation.errors import IllegalTransitionError
from app.services.reconciliation.stores import AppointmentStore, LeadStore, TimeslotStore
from app.services.reconciliation.timeslot_allocator import TimeslotAllocator

logger = logging.getLogger(__name__)

router = APIRouter()


async def _run_batch(runner: BatchRunner, rows, mode: RunMode, threshold_hours: Optional[float]):
    try:
        return await runner.run(rows, mode, threshold_hours)
    except (OperationalError, InterfaceError) as e:
        logger.error(f"Status update aborted, database unavailable: {type(e).__name__}")
        raise ServiceUnavailableError("Database unavailable; no further rows were processed")


@router.post("/status-update", response_model=StatusUpdateResponse)
async def post_status_update(
    payload: StatusUpdateRequest,
    db: DbSession,
    clock: BusinessClock,
    eligibility: Eligibility,
    notifier: Notifier,
) -> StatusUpdateResponse:
    """Reconcile a batch of call-sheet rows (live) or finalize the day (end_of_day)."""
    acting_user = resolve_acting_user(payload.api_key, payload.agent_user_id)
    rows = payload.batch_rows()
    logger.info(
        f"Status update: mode={payload.mode.value}, rows={len(rows)}, "
        f"sheet={payload.sheet_label() or '-'}"
    )

    runner = BatchRunner(db, clock, eligibility, notifier, agent_id=acting_user)
    summary = await _run_batch(runner, rows, payload.mode, payload.threshold_hours)
    return StatusUpdateResponse.from_summary(summary, sheet=payload.sheet_label())


@router.get("/status-update", response_model=StatusUpdateResponse)
async def get_status_update(
    db: DbSession,
    clock: BusinessClock,
    eligibility: Eligibility,
    notifier: Notifier,
    mode: str = Query("live", description="live (time-only sweep) or end_of_day"),
    threshold_hours: Optional[float] = Query(None, alias="thresholdHours", gt=0, le=24),
    api_key: Optional[str] = Query(None),
) -> StatusUpdateResponse:
    """Run the time-only sweep (or end-of-day finalization) without a row payload."""
    acting_user = resolve_acting_user(api_key)
    try:
        run_mode = RunMode.parse(mode)
    except ValueError:
        raise BusinessRuleError(f"Unknown mode: {mode}")

    runner = BatchRunner(db, clock, eligibility, notifier, agent_id=acting_user)
    summary = await _run_batch(runner, None, run_mode, threshold_hours)
    return StatusUpdateResponse.from_summary(summary)


@router.post("/{appointment_id}/cancel", response_model=AppointmentCancelResponse)
async def cancel_appointment(
    appointment_id: int,
    db: DbSession,
    clock: BusinessClock,
    api_key: Optional[str] = Query(None),
) -> AppointmentCancelResponse:
    """Cancel an upcoming appointment, free its timeslot and return the lead to `assigned`."""
    acting_user = resolve_acting_user(api_key)

    appointment = await db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment", str(appointment_id), instance=f"/api/v2/appointments/{appointment_id}/cancel")

    appointments = AppointmentStore(db)
    leads = LeadStore(db)
    lead = await leads.get(appointment.lead_id, for_update=True)
    slot_id = await appointments.held_timeslot_id(appointment.id)
    machine = AppointmentStateMachine(clock, TimeslotAllocator(TimeslotStore(db)))

    try:
        result = await machine.cancel(appointment, appointments, acting_user, leads=leads, lead=lead)
    except IllegalTransitionError as e:
        await db.rollback()
        raise BusinessRuleError(e.message)
    await db.commit()

    logger.info(f"Appointment {appointment_id} cancelled by {acting_user}")
    return AppointmentCancelResponse(
        id=appointment_id,
        status=AppointmentStatus.cancelled.value,
        previous_status=result.before.value,
        released_timeslot_id=slot_id if result.changed else None,
        lead_status=lead.status.value if lead is not None else None,
    )
