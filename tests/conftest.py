from datetime import date, datetime, time, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db
from app.api.deps import get_clock, get_notification_sink, get_eligibility_checker
from app.models import (
    Appointment,
    AppointmentTimeslot,
    Borrower,
    BorrowerAppointment,
    BorrowerAppointmentTimeslot,
    Lead,
    Timeslot,
)
from app.models.statuses import AppointmentStatus
from app.services.reconciliation.clock import FixedClock
from app.services.reconciliation.eligibility import HttpEligibilityChecker

from tests.factories import AppointmentFactory, BorrowerFactory, LeadFactory
from tests.fakes import RecordingNotificationSink

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Friday 2026-10-16, 14:00 in Singapore
SGT = timezone(timedelta(hours=8))
NOW_SGT = datetime(2026, 10, 16, 14, 0, tzinfo=SGT)
TODAY = NOW_SGT.date()


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW_SGT)


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def eligibility(test_db: AsyncSession):
    """Local eligibility rules only (no registry URL)."""
    return HttpEligibilityChecker(test_db)


@pytest.fixture
def make_slots(test_db: AsyncSession):
    """Create one slot per hour on `day` between `start_hour` and `end_hour`."""

    async def _make(day: date = TODAY, start_hour: int = 9, end_hour: int = 17, capacity: int = 1, occupied: int = 0):
        slots = [
            Timeslot(
                date=day,
                start_time=time(hour, 0),
                end_time=time(hour + 1, 0),
                max_capacity=capacity,
                occupied_count=occupied,
                is_disabled=False,
            )
            for hour in range(start_hour, end_hour)
        ]
        test_db.add_all(slots)
        await test_db.commit()
        return slots

    return _make


@pytest.fixture
def make_lead(test_db: AsyncSession):
    async def _make(**overrides) -> Lead:
        lead = Lead(**LeadFactory(**overrides))
        test_db.add(lead)
        await test_db.commit()
        return lead

    return _make


@pytest.fixture
def make_borrower(test_db: AsyncSession):
    async def _make(**overrides) -> Borrower:
        borrower = Borrower(**BorrowerFactory(**overrides))
        test_db.add(borrower)
        await test_db.commit()
        return borrower

    return _make


@pytest.fixture
def book(test_db: AsyncSession, clock: FixedClock):
    """Book an appointment in `slot`, holding one unit of its capacity."""

    async def _book(owner, slot: Timeslot, status: AppointmentStatus = AppointmentStatus.upcoming, **overrides):
        is_borrower = isinstance(owner, Borrower)
        fields = AppointmentFactory(
            status=status,
            start_datetime=clock.at_local(slot.date, slot.start_time),
            end_datetime=clock.at_local(slot.date, slot.end_time),
            **overrides,
        )
        if is_borrower:
            fields.pop("lead_source", None)
            fields.pop("created_by", None)
            appointment = BorrowerAppointment(borrower_id=owner.id, **fields)
        else:
            appointment = Appointment(lead_id=owner.id, **fields)
        test_db.add(appointment)
        await test_db.flush()

        if is_borrower:
            test_db.add(BorrowerAppointmentTimeslot(borrower_appointment_id=appointment.id, timeslot_id=slot.id))
        else:
            test_db.add(AppointmentTimeslot(appointment_id=appointment.id, timeslot_id=slot.id))
        slot.occupied_count += 1
        await test_db.commit()
        return appointment

    return _book


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, clock: FixedClock, notifier: RecordingNotificationSink):
    """Create test client with overridden database, clock and outbound webhooks."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_sink] = lambda: notifier
    app.dependency_overrides[get_eligibility_checker] = lambda: HttpEligibilityChecker(test_db)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
