"""Reconciliation Scheduler - time-driven status sweeps and slot generation.

Jobs (Singapore time):
- Every 30 minutes during business hours: time-only sweep, upcoming
  appointments past the threshold become missed (lead -> follow_up)
- Once each evening: end-of-day finalization
- Daily at 00:30: generate timeslots for the next TIMESLOT_GENERATION_DAYS days
"""

import logging
from datetime import timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from app.config import settings
from app.database import async_session_maker
from app.models.timeslot import CalendarSettings
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.sweepers import EndOfDaySweeper, TimeoutSweeper
from app.services.reconciliation.timeslot_generator import TimeslotGenerator

logger = logging.getLogger(__name__)

BUSINESS_TZ = timezone(timedelta(hours=settings.BUSINESS_UTC_OFFSET_HOURS))

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def run_timeout_sweep(clock: Optional[Clock] = None) -> dict:
    """Job: mark overdue upcoming appointments as missed."""
    clock = clock or Clock()
    logger.info("Starting scheduled timeout sweep...")
    try:
        async with async_session_maker() as db:
            actions = await TimeoutSweeper(db, clock).run(settings.TIME_SWEEP_THRESHOLD_HOURS)
    except Exception as e:
        logger.error(f"Fatal error in timeout sweep: {e}", exc_info=True)
        return {"status": "failed", "error": type(e).__name__}

    errors = sum(1 for a in actions if not a.success)
    return {"status": "completed", "updated": len(actions) - errors, "errors": errors}


async def run_end_of_day(clock: Optional[Clock] = None) -> dict:
    """Job: finalize today's appointments."""
    clock = clock or Clock()
    logger.info("Starting scheduled end-of-day finalization...")
    try:
        async with async_session_maker() as db:
            actions = await EndOfDaySweeper(db, clock).run(settings.LIVE_THRESHOLD_HOURS)
    except Exception as e:
        logger.error(f"Fatal error in end-of-day finalization: {e}", exc_info=True)
        return {"status": "failed", "error": type(e).__name__}

    errors = sum(1 for a in actions if not a.success)
    return {"status": "completed", "updated": len(actions) - errors, "errors": errors}


async def generate_upcoming_timeslots(clock: Optional[Clock] = None) -> dict:
    """Job: keep TIMESLOT_GENERATION_DAYS days of slots ahead for every calendar."""
    clock = clock or Clock()
    start = clock.today()
    end = start + timedelta(days=settings.TIMESLOT_GENERATION_DAYS)
    created = 0
    errors = 0

    try:
        async with async_session_maker() as db:
            result = await db.execute(select(CalendarSettings.id))
            for settings_id in result.scalars().all():
                try:
                    created += await TimeslotGenerator(db).generate(settings_id, start, end)
                except Exception as e:
                    errors += 1
                    await db.rollback()
                    logger.error(f"Error generating timeslots for calendar {settings_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Fatal error in timeslot generation: {e}", exc_info=True)
        return {"status": "failed", "error": type(e).__name__}

    logger.info(f"Timeslot generation complete. Created: {created}, Errors: {errors}")
    return {"status": "completed", "created": created, "errors": errors}


def start_reconciliation_scheduler():
    """Start the scheduler with all reconciliation jobs."""
    global scheduler

    scheduler = get_scheduler()

    scheduler.add_job(
        run_timeout_sweep,
        CronTrigger(hour="9-20", minute="0,30", timezone=BUSINESS_TZ),
        id="reconciliation_timeout_sweep",
        name="Mark overdue appointments missed",
        replace_existing=True,
    )

    scheduler.add_job(
        run_end_of_day,
        CronTrigger(hour=settings.END_OF_DAY_HOUR, minute=0, timezone=BUSINESS_TZ),
        id="reconciliation_end_of_day",
        name="End-of-day status finalization",
        replace_existing=True,
    )

    scheduler.add_job(
        generate_upcoming_timeslots,
        CronTrigger(hour=0, minute=30, timezone=BUSINESS_TZ),
        id="timeslot_generation",
        name="Generate upcoming timeslots",
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("Reconciliation scheduler started")
        logger.info("Jobs scheduled:")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")


def stop_reconciliation_scheduler():
    """Stop the reconciliation scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Reconciliation scheduler stopped")
