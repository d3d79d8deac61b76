"""
Appointment state machine for engine-driven changes.

Agents may edit appointments freely through the UI; the engine is only
licensed for the transitions in ENGINE_TRANSITIONS.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.models.statuses import AppointmentStatus, LeadStatus
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.errors import IllegalTransitionError
from app.services.reconciliation.stores import AppointmentStore, LeadStore
from app.services.reconciliation.timeslot_allocator import TimeslotAllocator

logger = logging.getLogger(__name__)

ENGINE_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.upcoming: frozenset({
        AppointmentStatus.done,
        AppointmentStatus.missed,
        AppointmentStatus.cancelled,
    }),
    AppointmentStatus.missed: frozenset({AppointmentStatus.upcoming}),
}


@dataclass(frozen=True)
class TransitionResult:
    before: AppointmentStatus
    after: AppointmentStatus
    changed: bool


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ENGINE_TRANSITIONS.get(current, frozenset())


class AppointmentStateMachine:
    """Applies engine transitions to lead or borrower appointments."""

    def __init__(self, clock: Clock, allocator: Optional[TimeslotAllocator] = None):
        self.clock = clock
        self.allocator = allocator

    def transition(self, appointment, target: AppointmentStatus, actor: str) -> TransitionResult:
        current = AppointmentStatus(appointment.status)
        if current == target:
            return TransitionResult(current, target, False)
        if not can_transition(current, target):
            raise IllegalTransitionError("appointment", current, target)
        appointment.status = target
        appointment.updated_by = actor
        logger.debug(f"Appointment {appointment.id}: {current.value} -> {target.value}")
        return TransitionResult(current, target, True)

    def is_past_threshold(self, appointment, threshold_hours: float) -> bool:
        return self.clock.hours_since(appointment.start_datetime) >= threshold_hours

    def mark_missed(self, appointment, threshold_hours: float, actor: str) -> TransitionResult:
        """upcoming -> missed, only once `threshold_hours` have passed since the start."""
        current = AppointmentStatus(appointment.status)
        if not self.is_past_threshold(appointment, threshold_hours):
            return TransitionResult(current, current, False)
        return self.transition(appointment, AppointmentStatus.missed, actor)

    async def reopen(self, appointment, appointments: AppointmentStore, actor: str) -> TransitionResult:
        """missed -> upcoming, refused while the owner has a newer or another upcoming appointment."""
        if await appointments.has_other_active(appointment):
            raise IllegalTransitionError(
                "appointment", appointment.status, AppointmentStatus.upcoming,
                "a newer appointment exists",
            )
        return self.transition(appointment, AppointmentStatus.upcoming, actor)

    async def cancel(
        self,
        appointment,
        appointments: AppointmentStore,
        actor: str,
        leads: Optional[LeadStore] = None,
        lead=None,
    ) -> TransitionResult:
        """upcoming -> cancelled; gives the slot back and returns the lead to `assigned`."""
        result = self.transition(appointment, AppointmentStatus.cancelled, actor)
        if not result.changed:
            return result

        slot_id = await appointments.held_timeslot_id(appointment.id)
        if slot_id is not None and self.allocator is not None:
            await self.allocator.release(slot_id)

        if leads is not None and lead is not None:
            leads.set_status(lead, LeadStatus.assigned, actor)
        return result
