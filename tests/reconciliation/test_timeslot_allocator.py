"""
Tests for capacity-safe timeslot allocation.
"""

import asyncio
from datetime import time, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.timeslot import CalendarException, Timeslot
from app.services.reconciliation.errors import (
    ConcurrentUpdateConflict,
    NoSlotAvailableError,
    SlotFullError,
)
from app.services.reconciliation.stores import TimeslotStore
from app.services.reconciliation.timeslot_allocator import TimeslotAllocator


class TestFindNearest:
    """Tests for picking the nearest slot."""

    @pytest.mark.asyncio
    async def test_current_slot_first(self, test_db: AsyncSession, clock, make_slots):
        """At 14:00 the 14:00 slot is nearest; the 13:00 slot has ended."""
        await make_slots()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        slot = await allocator.find_nearest(clock.today(), clock.local_time())

        assert slot.start_time == time(14, 0)

    @pytest.mark.asyncio
    async def test_skips_full_and_disabled(self, test_db: AsyncSession, clock, make_slots):
        """Full and disabled slots are never offered."""
        slots = await make_slots()
        slots[5].occupied_count = 1  # 14:00
        slots[6].is_disabled = True  # 15:00
        await test_db.commit()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        slot = await allocator.find_nearest(clock.today(), clock.local_time())

        assert slot.start_time == time(16, 0)

    @pytest.mark.asyncio
    async def test_fully_booked_day(self, test_db: AsyncSession, clock, make_slots):
        """A fully booked day has no nearest slot and reserving fails cleanly."""
        await make_slots(occupied=1)
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        assert await allocator.find_nearest(clock.today()) is None
        with pytest.raises(NoSlotAvailableError) as exc_info:
            await allocator.reserve_nearest(clock.today(), clock.local_time())
        assert clock.today().isoformat() in exc_info.value.message


class TestReserveNearest:
    """Tests for find-then-allocate."""

    @pytest.mark.asyncio
    async def test_reserves_and_counts(self, test_db: AsyncSession, clock, make_slots):
        """Reserving takes one unit of the nearest slot."""
        await make_slots()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        slot = await allocator.reserve_nearest(clock.today(), clock.local_time())

        assert slot.start_time == time(14, 0)
        assert slot.occupied_count == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_earlier_slot_today(self, test_db: AsyncSession, clock, make_slots):
        """With the afternoon full, an earlier slot of the same day is used."""
        slots = await make_slots()
        for slot in slots[5:]:
            slot.occupied_count = 1
        await test_db.commit()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        slot = await allocator.reserve_nearest(clock.today(), clock.local_time())

        assert slot.start_time == time(9, 0)

    @pytest.mark.asyncio
    async def test_lookahead_skips_closed_days(self, test_db: AsyncSession, clock, make_slots):
        """Later days are searched in order, closed dates skipped."""
        today = clock.today()
        await make_slots(day=today, occupied=1)
        await make_slots(day=today + timedelta(days=1))
        await make_slots(day=today + timedelta(days=2), start_hour=10, end_hour=12)
        test_db.add(CalendarException(date=today + timedelta(days=1), is_closed=True, reason="Closed"))
        await test_db.commit()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        slot = await allocator.reserve_nearest(today, clock.local_time(), lookahead_days=2)

        assert slot.date == today + timedelta(days=2)
        assert slot.start_time == time(10, 0)

    @pytest.mark.asyncio
    async def test_lost_update_retried_once(self, clock):
        """A lost race on a slot that still has room is retried."""
        slot = SimpleNamespace(id=1, is_disabled=False, is_full=False)
        store = MagicMock()
        store.first_available = AsyncMock(return_value=slot)
        store.increment_if_available = AsyncMock(side_effect=[False, True])
        store.get = AsyncMock(return_value=slot)
        store.is_closed = AsyncMock(return_value=False)

        result = await TimeslotAllocator(store).reserve_nearest(clock.today())

        assert result is slot
        assert store.increment_if_available.await_count == 2


class TestAllocateAndRelease:
    """Tests for the capacity primitives."""

    @pytest.mark.asyncio
    async def test_allocate_full_slot(self, test_db: AsyncSession, make_slots):
        """Allocating a full slot raises SlotFull, not a conflict."""
        slots = await make_slots(occupied=1)
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        with pytest.raises(SlotFullError) as exc_info:
            await allocator.allocate(slots[0].id)

        assert not isinstance(exc_info.value, ConcurrentUpdateConflict)
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_release_never_goes_negative(self, test_db: AsyncSession, make_slots):
        """Releasing an empty slot is a logged no-op."""
        slots = await make_slots()
        allocator = TimeslotAllocator(TimeslotStore(test_db))

        assert await allocator.release(slots[0].id) is False
        refreshed = await TimeslotStore(test_db).get(slots[0].id)
        assert refreshed.occupied_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_allocations_respect_capacity(self, test_db: AsyncSession, make_slots):
        """More concurrent bookers than capacity: exactly `capacity` succeed."""
        slots = await make_slots(start_hour=9, end_hour=10, capacity=3)
        slot_id = slots[0].id
        session_maker = async_sessionmaker(test_db.bind, expire_on_commit=False)

        async def book_once() -> bool:
            async with session_maker() as db:
                try:
                    await TimeslotAllocator(TimeslotStore(db)).allocate(slot_id)
                except SlotFullError:
                    await db.rollback()
                    return False
                await db.commit()
                return True

        results = await asyncio.gather(*(book_once() for _ in range(8)))

        assert sum(results) == 3
        result = await test_db.execute(
            select(Timeslot.occupied_count).where(Timeslot.id == slot_id).execution_options(populate_existing=True)
        )
        assert result.scalar_one() == 3
