"""
Capacity-safe timeslot allocation.

Occupancy only ever moves through TimeslotStore's conditional UPDATEs, so
concurrent bookings (other webhook calls, agents booking in the UI) can
never push a slot past max_capacity.
"""

import logging
from datetime import date, time, timedelta
from typing import Iterable, Optional

from app.models.timeslot import Timeslot
from app.services.reconciliation.errors import (
    ConcurrentUpdateConflict,
    NoSlotAvailableError,
    SlotFullError,
)
from app.services.reconciliation.stores import TimeslotStore

logger = logging.getLogger(__name__)


class TimeslotAllocator:
    def __init__(self, timeslots: TimeslotStore):
        self.timeslots = timeslots

    async def find_nearest(
        self,
        day: date,
        from_time: Optional[time] = None,
        exclude_ids: Iterable[int] = (),
    ) -> Optional[Timeslot]:
        """Earliest enabled slot on `day` with spare capacity that has not ended by `from_time`."""
        return await self.timeslots.first_available(day, from_time, exclude_ids)

    async def allocate(self, slot_id: int) -> None:
        if await self.timeslots.increment_if_available(slot_id):
            return
        slot = await self.timeslots.get(slot_id)
        if slot is not None and not slot.is_disabled and not slot.is_full:
            # Capacity was there by the time we re-read; our update lost a race
            raise ConcurrentUpdateConflict(slot_id)
        raise SlotFullError(slot_id)

    async def release(self, slot_id: int) -> bool:
        released = await self.timeslots.decrement_if_occupied(slot_id)
        if not released:
            logger.warning(f"Release of timeslot {slot_id} ignored: occupancy already zero")
        return released

    async def reserve_nearest(
        self,
        day: date,
        from_time: Optional[time] = None,
        lookahead_days: int = 0,
    ) -> Timeslot:
        """
        Find and allocate the nearest slot, starting on `day`.

        On `day` itself slots still running at `from_time` are preferred,
        then earlier slots of the same day. Later days (up to
        `lookahead_days`, skipping closed dates) are searched from their
        first slot. Raises NoSlotAvailableError when every candidate is
        exhausted.
        """
        for offset in range(lookahead_days + 1):
            candidate_day = day + timedelta(days=offset)
            if offset and await self.timeslots.is_closed(candidate_day):
                continue

            windows = [from_time, None] if (offset == 0 and from_time is not None) else [None]
            for window_start in windows:
                slot = await self._reserve_on_day(candidate_day, window_start)
                if slot is not None:
                    return slot

        raise NoSlotAvailableError(day, day + timedelta(days=lookahead_days))

    async def _reserve_on_day(self, day: date, from_time: Optional[time]) -> Optional[Timeslot]:
        lost: set[int] = set()
        retried: set[int] = set()
        while True:
            slot = await self.find_nearest(day, from_time, lost)
            if slot is None:
                return None
            try:
                await self.allocate(slot.id)
            except ConcurrentUpdateConflict:
                if slot.id in retried:
                    lost.add(slot.id)
                else:
                    logger.info(f"Lost update on timeslot {slot.id}, retrying once")
                    retried.add(slot.id)
                continue
            except SlotFullError:
                logger.debug(f"Timeslot {slot.id} filled before allocation, trying next")
                lost.add(slot.id)
                continue
            return await self.timeslots.get(slot.id)
