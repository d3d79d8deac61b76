"""Row- and step-level errors raised inside the reconciliation engine."""

import enum
from datetime import date
from typing import Optional


class ErrorKind(str, enum.Enum):
    invalid_row = "InvalidRow"
    slot_full = "SlotFull"
    no_slot_available = "NoSlotAvailable"
    eligibility_check_failed = "EligibilityCheckFailed"
    external_notify_failed = "ExternalNotifyFailed"
    concurrent_update_conflict = "ConcurrentUpdateConflict"
    illegal_transition = "IllegalTransition"


class ReconciliationError(Exception):
    """Base class. Never escapes a batch; becomes a failed action instead."""

    kind: ErrorKind
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRowError(ReconciliationError):
    kind = ErrorKind.invalid_row


class SlotFullError(ReconciliationError):
    kind = ErrorKind.slot_full
    retryable = True

    def __init__(self, slot_id: int):
        super().__init__(f"Timeslot {slot_id} is full")
        self.slot_id = slot_id


class ConcurrentUpdateConflict(SlotFullError):
    """A slot that looked free was taken between the read and the update."""

    kind = ErrorKind.concurrent_update_conflict


class NoSlotAvailableError(ReconciliationError):
    kind = ErrorKind.no_slot_available

    def __init__(self, day: date, last_day: Optional[date] = None):
        if last_day and last_day != day:
            message = f"No available timeslot between {day.isoformat()} and {last_day.isoformat()}"
        else:
            message = f"No available timeslot on {day.isoformat()}"
        super().__init__(message)
        self.day = day


class EligibilityCheckError(ReconciliationError):
    kind = ErrorKind.eligibility_check_failed


class NotifyError(ReconciliationError):
    kind = ErrorKind.external_notify_failed


class IllegalTransitionError(ReconciliationError):
    kind = ErrorKind.illegal_transition

    def __init__(self, entity: str, current, target, reason: str = ""):
        current = getattr(current, "value", current)
        target = getattr(target, "value", target)
        message = f"Illegal {entity} transition {current} -> {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target
