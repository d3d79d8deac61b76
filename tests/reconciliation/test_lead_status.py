"""
Tests for the call outcome decision table.
"""

import pytest

from app.models.statuses import AppointmentStatus, LeadStatus, LoanCode
from app.services.reconciliation.lead_status import (
    loan_notes_for,
    loan_status_for,
    project_call_outcome,
    project_end_of_day_miss,
    project_final_status,
    project_live_miss,
    project_timeout_miss,
)


class TestProjectCallOutcome:
    """Tests for project_call_outcome."""

    @pytest.mark.parametrize("uw_filled", [True, False])
    def test_rs_wins_over_uw(self, uw_filled):
        """RS always lands on missed/RS, filled UW or not."""
        projection = project_call_outcome(LoanCode.RS, uw_filled)

        assert projection.appointment_status is AppointmentStatus.done
        assert projection.lead_status is LeadStatus.missed_rs
        assert projection.notify_rejection is False

    def test_r_is_done_and_notifies(self):
        """R closes the lead and asks for a rejection notification."""
        projection = project_call_outcome(LoanCode.R, False)

        assert projection.appointment_status is AppointmentStatus.done
        assert projection.lead_status is LeadStatus.done
        assert projection.notify_rejection is True

    @pytest.mark.parametrize(
        "code,uw_filled",
        [(LoanCode.P, False), (LoanCode.PRS, False), (LoanCode.other, True), (LoanCode.P, True)],
    )
    def test_done_outcomes(self, code, uw_filled):
        """UW filled, P and PRS all finish the appointment and the lead."""
        projection = project_call_outcome(code, uw_filled)

        assert projection.appointment_status is AppointmentStatus.done
        assert projection.lead_status is LeadStatus.done
        assert projection.notify_rejection is False

    def test_no_outcome(self):
        """No code and no UW means nothing to project."""
        assert project_call_outcome(LoanCode.other, False) is None


class TestMissProjections:
    """Tests for the three miss projections."""

    def test_live_and_end_of_day_finalize(self):
        """Live and end-of-day misses put the lead at missed/RS."""
        for projection in (project_live_miss(), project_end_of_day_miss()):
            assert projection.appointment_status is AppointmentStatus.missed
            assert projection.lead_status is LeadStatus.missed_rs

    def test_timeout_keeps_lead_recoverable(self):
        """The mid-day sweep leaves the lead at follow_up."""
        projection = project_timeout_miss()

        assert projection.appointment_status is AppointmentStatus.missed
        assert projection.lead_status is LeadStatus.follow_up


class TestFinalStatus:
    """Tests for deriving a lead status from a persisted loan status."""

    @pytest.mark.parametrize(
        "loan_status,expected",
        [
            ("RS", LeadStatus.missed_rs),
            ("rs", LeadStatus.missed_rs),
            ("P", LeadStatus.done),
            ("PRS", LeadStatus.done),
            ("R", LeadStatus.done),
            (None, None),
            ("", None),
            ("pending", None),
        ],
    )
    def test_final_status(self, loan_status, expected):
        """Only known loan codes imply a status."""
        assert project_final_status(loan_status) == expected


class TestLoanFields:
    """Tests for the loan status and notes written alongside a projection."""

    def test_loan_status(self):
        """Known codes are stored as-is, other stores nothing."""
        assert loan_status_for(LoanCode.PRS) == "PRS"
        assert loan_status_for(LoanCode.other) is None

    def test_notes(self):
        """Notes follow the agent-facing wording."""
        assert loan_notes_for(LoanCode.P) == "P - Done"
        assert loan_notes_for(LoanCode.PRS) == "PRS - Customer Rejected"
        assert loan_notes_for(LoanCode.R) == "R - Rejected"
        assert loan_notes_for(LoanCode.other) is None

    def test_rs_notes_include_reason(self):
        """RS notes carry the reason and detail when present."""
        assert loan_notes_for(LoanCode.RS) == "RS - Rejected"
        assert (
            loan_notes_for(LoanCode.RS, "Low income", "Below 1500")
            == "RS - Rejected. RS Reason: Low income. RS Details: Below 1500"
        )
