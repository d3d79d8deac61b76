"""
Batch runner for status-update webhook deliveries.

live        normalize each row, skip rows dated another day, reconcile the
            rest one by one; with no rows, run the time-only sweep
end_of_day  ignore rows, run end-of-day finalization
"""

import enum
import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.services.reconciliation.actions import ActionKind, ReconciliationAction, RunSummary
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.eligibility import EligibilityChecker
from app.services.reconciliation.errors import InvalidRowError
from app.services.reconciliation.notifications import NotificationSink
from app.services.reconciliation.orchestrator import ReconciliationOrchestrator
from app.services.reconciliation.phone_matcher import mask_phone
from app.services.reconciliation.row_normalizer import normalize_row
from app.services.reconciliation.sweepers import EndOfDaySweeper, TimeoutSweeper

logger = logging.getLogger(__name__)

ROW_NUMBER_KEYS = ("row_number", "rowNumber", "_row")


class RunMode(str, enum.Enum):
    live = "live"
    end_of_day = "end_of_day"

    @classmethod
    def parse(cls, value: Optional[str]) -> "RunMode":
        """Accepts the legacy "realtime" alias for live."""
        text = (value or cls.live.value).strip().lower()
        if text == "realtime":
            return cls.live
        return cls(text)


def _row_number(row: Mapping[str, Any], position: int) -> int:
    for key in ROW_NUMBER_KEYS:
        value = row.get(key)
        if value is not None and str(value).strip().isdigit():
            return int(str(value).strip())
    return position


class BatchRunner:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        eligibility: EligibilityChecker,
        notifier: NotificationSink,
        agent_id: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.eligibility = eligibility
        self.notifier = notifier
        self.agent_id = agent_id or settings.AGENT_USER_ID

    async def run(
        self,
        rows: Optional[Sequence[Mapping[str, Any]]] = None,
        mode: RunMode = RunMode.live,
        threshold_hours: Optional[float] = None,
    ) -> RunSummary:
        if mode is RunMode.end_of_day:
            threshold = settings.LIVE_THRESHOLD_HOURS if threshold_hours is None else threshold_hours
            summary = RunSummary(mode=mode.value, today=self.clock.today(), threshold_hours=threshold)
            sweeper = EndOfDaySweeper(self.db, self.clock, self.agent_id)
            summary.actions = await sweeper.run(threshold)
            return summary

        if not rows:
            threshold = settings.TIME_SWEEP_THRESHOLD_HOURS if threshold_hours is None else threshold_hours
            summary = RunSummary(mode=mode.value, today=self.clock.today(), threshold_hours=threshold)
            sweeper = TimeoutSweeper(self.db, self.clock, self.agent_id)
            summary.actions = await sweeper.run(threshold)
            return summary

        threshold = settings.LIVE_THRESHOLD_HOURS if threshold_hours is None else threshold_hours
        summary = RunSummary(mode=mode.value, today=self.clock.today(), threshold_hours=threshold)
        await self._run_rows(rows, threshold, summary)
        logger.info(summary.message)
        return summary

    async def _run_rows(self, rows: Sequence[Mapping[str, Any]], threshold: float, summary: RunSummary) -> None:
        orchestrator = ReconciliationOrchestrator(
            self.db,
            self.clock,
            self.eligibility,
            self.notifier,
            agent_id=self.agent_id,
            live_threshold_hours=threshold,
        )

        for position, row in enumerate(rows, start=1):
            row_number = _row_number(row, position)
            try:
                outcome = normalize_row(row, row_number)
            except InvalidRowError as e:
                summary.processed_count += 1
                summary.actions.append(
                    ReconciliationAction.failed(ActionKind.reject_row, e, row_number=row_number)
                )
                continue

            if outcome.row_date is not None and outcome.row_date != summary.today:
                logger.debug(f"Row {row_number}: dated {outcome.row_date}, not today, skipping")
                summary.skipped_count += 1
                continue

            summary.processed_count += 1
            try:
                summary.actions.extend(await orchestrator.reconcile(outcome))
            except (OperationalError, InterfaceError):
                # Storage is gone; this is a batch failure, not a row failure
                await self.db.rollback()
                raise
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    f"Row {row_number} ({mask_phone(outcome.phone)}) failed: {e}",
                    exc_info=True,
                )
                summary.actions.append(
                    ReconciliationAction(
                        kind=ActionKind.reject_row,
                        success=False,
                        message=f"Unexpected error: {type(e).__name__}",
                        row_number=row_number,
                    )
                )
