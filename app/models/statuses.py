"""Closed status vocabularies shared by leads, borrowers and appointments."""

import enum

from sqlalchemy import Enum


class LeadStatus(str, enum.Enum):
    new = "new"
    assigned = "assigned"
    no_answer = "no_answer"
    follow_up = "follow_up"
    booked = "booked"
    done = "done"
    missed_rs = "missed/RS"
    unqualified = "unqualified"
    give_up = "give_up"
    blacklisted = "blacklisted"


class AppointmentStatus(str, enum.Enum):
    upcoming = "upcoming"
    cancelled = "cancelled"
    done = "done"
    missed = "missed"


class LoanCode(str, enum.Enum):
    """Outcome marker from the call sheet."""

    P = "P"      # approved
    PRS = "PRS"  # approved, customer rejected
    RS = "RS"    # rejected by system, special reason
    R = "R"      # rejected
    other = "other"


class LoanType(str, enum.Enum):
    new = "new"
    reloan = "reloan"


# Lead statuses the reconciliation engine may write. Everything else is
# reserved for agents and admins.
ENGINE_LEAD_STATUSES = frozenset({
    LeadStatus.done,
    LeadStatus.missed_rs,
    LeadStatus.follow_up,
    LeadStatus.new,
    LeadStatus.assigned,
})


def status_column_type(enum_cls: type[enum.Enum]) -> Enum:
    """VARCHAR-backed enum type storing the member values ("missed/RS", not "missed_rs")."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=50,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
