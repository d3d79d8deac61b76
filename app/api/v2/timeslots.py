"""
Timeslot API endpoints.
"""

import logging
from datetime import date

from fastapi import APIRouter, Query
from sqlalchemy import select

from app.api.deps import DbSession
from app.exceptions import NotFoundError
from app.models.timeslot import Timeslot
from app.schemas.status_update import (
    TimeslotGenerateRequest,
    TimeslotGenerateResponse,
    TimeslotResponse,
)
from app.services.reconciliation.timeslot_generator import TimeslotGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[TimeslotResponse])
async def list_timeslots(
    db: DbSession,
    day: date = Query(..., alias="date", description="Singapore local date"),
) -> list[TimeslotResponse]:
    """List the slots of one day with their occupancy."""
    result = await db.execute(
        select(Timeslot).where(Timeslot.date == day).order_by(Timeslot.start_time, Timeslot.id)
    )
    return [TimeslotResponse.model_validate(slot) for slot in result.scalars().all()]


@router.post("/generate", response_model=TimeslotGenerateResponse)
async def generate_timeslots(
    request: TimeslotGenerateRequest,
    db: DbSession,
) -> TimeslotGenerateResponse:
    """Create missing slots for a date range from a calendar configuration."""
    generator = TimeslotGenerator(db)
    try:
        created = await generator.generate(request.calendar_setting_id, request.start_date, request.end_date)
    except LookupError:
        raise NotFoundError("Calendar settings", str(request.calendar_setting_id))

    return TimeslotGenerateResponse(
        calendar_setting_id=request.calendar_setting_id,
        start_date=request.start_date,
        end_date=request.end_date,
        created=created,
    )
