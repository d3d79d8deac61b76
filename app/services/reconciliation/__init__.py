"""Appointment and lead status reconciliation engine."""

from app.services.reconciliation.actions import ActionKind, ReconciliationAction, RunSummary
from app.services.reconciliation.batch_runner import BatchRunner, RunMode
from app.services.reconciliation.clock import Clock, FixedClock
from app.services.reconciliation.eligibility import HttpEligibilityChecker
from app.services.reconciliation.errors import ErrorKind, ReconciliationError
from app.services.reconciliation.notifications import WebhookNotificationSink
from app.services.reconciliation.orchestrator import ReconciliationOrchestrator
from app.services.reconciliation.sweepers import EndOfDaySweeper, TimeoutSweeper
from app.services.reconciliation.timeslot_generator import TimeslotGenerator

__all__ = [
    "ActionKind",
    "ReconciliationAction",
    "RunSummary",
    "BatchRunner",
    "RunMode",
    "Clock",
    "FixedClock",
    "HttpEligibilityChecker",
    "ErrorKind",
    "ReconciliationError",
    "WebhookNotificationSink",
    "ReconciliationOrchestrator",
    "EndOfDaySweeper",
    "TimeoutSweeper",
    "TimeslotGenerator",
]
