"""Per-row action records and the run summary built from them."""

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from app.services.reconciliation.errors import ErrorKind, ReconciliationError


class ActionKind(str, enum.Enum):
    create_lead = "create_lead"
    create_appointment = "create_appointment"
    move_appointment = "move_appointment"
    update_appointment = "update_appointment"
    update_borrower_appointment = "update_borrower_appointment"
    timeout_appointment = "timeout_appointment"
    final_status_update = "final_status_update"
    reject_row = "reject_row"


# Response counter name per action kind (successful actions only)
ACTION_TYPE_COUNTERS: dict[str, tuple[ActionKind, ...]] = {
    "leads_created": (ActionKind.create_lead,),
    "appointments_created": (ActionKind.create_appointment,),
    "appointments_moved": (ActionKind.move_appointment,),
    "appointments_updated": (ActionKind.update_appointment, ActionKind.update_borrower_appointment),
    "timeout_updates": (ActionKind.timeout_appointment,),
    "final_status_updates": (ActionKind.final_status_update,),
}


def _value(status) -> Optional[str]:
    return getattr(status, "value", status)


@dataclass
class ReconciliationAction:
    kind: ActionKind
    success: bool
    message: str
    row_number: Optional[int] = None
    lead_id: Optional[int] = None
    borrower_id: Optional[int] = None
    appointment_id: Optional[int] = None
    appointment_status_before: Optional[str] = None
    appointment_status_after: Optional[str] = None
    lead_status_before: Optional[str] = None
    lead_status_after: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def __post_init__(self):
        self.appointment_status_before = _value(self.appointment_status_before)
        self.appointment_status_after = _value(self.appointment_status_after)
        self.lead_status_before = _value(self.lead_status_before)
        self.lead_status_after = _value(self.lead_status_after)

    @classmethod
    def failed(cls, kind: ActionKind, error: ReconciliationError, **ids) -> "ReconciliationAction":
        return cls(kind=kind, success=False, message=error.message, error_kind=error.kind, **ids)


@dataclass
class RunSummary:
    mode: str
    today: date
    threshold_hours: float
    processed_count: int = 0
    skipped_count: int = 0
    actions: list[ReconciliationAction] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for a in self.actions if a.success)

    @property
    def error_count(self) -> int:
        return sum(1 for a in self.actions if not a.success)

    @property
    def message(self) -> str:
        if self.mode == "end_of_day":
            head = "End-of-day finalization"
        elif self.processed_count or self.skipped_count:
            head = f"Processed {self.processed_count} rows"
        else:
            head = "Time-based status sweep"
        return (
            f"{head}: {self.success_count} successful, {self.error_count} failed, "
            f"{self.skipped_count} skipped"
        )

    def action_type_counts(self) -> dict[str, int]:
        return {
            name: sum(1 for a in self.actions if a.success and a.kind in kinds)
            for name, kinds in ACTION_TYPE_COUNTERS.items()
        }

    def summary(self) -> dict[str, Any]:
        return {
            "totalActions": len(self.actions),
            "successful": self.success_count,
            "failed": self.error_count,
            "skipped": self.skipped_count,
            "actionTypes": self.action_type_counts(),
        }
