"""
Call outcome -> (appointment status, lead status).

Pure functions only. The three "missed" projections stay separate because
their call sites mean different things: a live row with no outcome past
the threshold and the end-of-day pass finalize the miss, the mid-day
time sweep leaves the lead recoverable for follow-up.
"""

from dataclasses import dataclass
from typing import Optional

from app.models.statuses import AppointmentStatus, LeadStatus, LoanCode


@dataclass(frozen=True)
class Projection:
    appointment_status: AppointmentStatus
    lead_status: LeadStatus
    notify_rejection: bool = False


def project_call_outcome(code: LoanCode, uw_filled: bool) -> Optional[Projection]:
    """Decision table for a row carrying a code or a filled UW column. None when it carries neither."""
    if code is LoanCode.RS:
        return Projection(AppointmentStatus.done, LeadStatus.missed_rs)
    if code is LoanCode.R:
        return Projection(AppointmentStatus.done, LeadStatus.done, notify_rejection=True)
    if uw_filled or code in (LoanCode.P, LoanCode.PRS):
        return Projection(AppointmentStatus.done, LeadStatus.done)
    return None


def project_live_miss() -> Projection:
    return Projection(AppointmentStatus.missed, LeadStatus.missed_rs)


def project_timeout_miss() -> Projection:
    return Projection(AppointmentStatus.missed, LeadStatus.follow_up)


def project_end_of_day_miss() -> Projection:
    return Projection(AppointmentStatus.missed, LeadStatus.missed_rs)


def project_final_status(loan_status: Optional[str]) -> Optional[LeadStatus]:
    """Lead status implied by a done appointment's persisted loan status."""
    code = (loan_status or "").strip().upper()
    if code == LoanCode.RS.value:
        return LeadStatus.missed_rs
    if code in (LoanCode.P.value, LoanCode.PRS.value, LoanCode.R.value):
        return LeadStatus.done
    return None


def loan_status_for(code: LoanCode) -> Optional[str]:
    return None if code is LoanCode.other else code.value


def loan_notes_for(code: LoanCode, rs_reason: str = "", rs_detail: str = "") -> Optional[str]:
    if code is LoanCode.P:
        return "P - Done"
    if code is LoanCode.PRS:
        return "PRS - Customer Rejected"
    if code is LoanCode.R:
        return "R - Rejected"
    if code is LoanCode.RS:
        notes = "RS - Rejected"
        if rs_reason:
            notes += f". RS Reason: {rs_reason}"
        if rs_detail:
            notes += f". RS Details: {rs_detail}"
        return notes
    return None
