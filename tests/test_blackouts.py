from datetime import time

import pytest

from app.core.errors import InvalidInput
from app.services.blackout_service import BlackoutRegistry
from app.services.booking_service import BookingService
from app.services.slot_calendar import SlotCalendar

from tests.conftest import MONDAY, SLOTS, TUESDAY


class TestBlackoutRegistry:
    async def test_add_is_idempotent(self, service):
        first = await service.add_blackout(TUESDAY, "Agency closed")
        second = await service.add_blackout(TUESDAY, "Agency closed again")
        assert first.id == second.id
        entries = await service.list_blackouts()
        assert len(entries) == 1
        assert entries[0].is_whole_day
        assert entries[0].reason == "Agency closed"

    async def test_whole_day_and_slot_entries_are_distinct(self, service):
        await service.add_blackout(MONDAY, "Training", slot="10:00")
        await service.add_blackout(MONDAY, "Holiday")
        entries = await service.list_blackouts()
        # whole-day entry sorts first
        assert [e.slot for e in entries] == [None, time(10)]

    async def test_add_accepts_iso_string(self, service):
        entry = await service.add_blackout("2025-10-14", None)
        assert entry.blackout_date == TUESDAY

    async def test_invalid_date_rejected(self, service):
        with pytest.raises(InvalidInput):
            await service.add_blackout("2025-02-30", "nope")

    async def test_slot_outside_grid_rejected(self, service):
        with pytest.raises(InvalidInput):
            await service.add_blackout(MONDAY, "lunch", slot="13:00")

    async def test_remove_missing_is_noop(self, service):
        assert await service.remove_blackout(MONDAY) is False
        assert await service.remove_blackout(MONDAY, "09:00") is False

    async def test_remove_only_matching_granularity(self, service):
        await service.add_blackout(MONDAY, None)
        await service.add_blackout(MONDAY, None, slot=time(9))
        assert await service.remove_blackout(MONDAY, time(9)) is True
        entries = await service.list_blackouts()
        assert len(entries) == 1
        assert entries[0].is_whole_day

    async def test_is_blocked(self, session_maker, calendar):
        async with session_maker() as session:
            async with session.begin():
                registry = BlackoutRegistry(session, calendar)
                await registry.add(MONDAY, "Viewing day off", slot="14:00")
                await registry.add(TUESDAY, "Closed")
            async with session.begin():
                registry = BlackoutRegistry(session, calendar)
                assert await registry.is_blocked(MONDAY, "14:00")
                assert not await registry.is_blocked(MONDAY, "15:00")
                assert await registry.is_blocked(TUESDAY, "09:00")
                assert await registry.is_blocked("2025-10-14", time(17))

    async def test_blocks_for_day(self, session_maker, calendar):
        async with session_maker() as session:
            async with session.begin():
                registry = BlackoutRegistry(session, calendar)
                await registry.add(MONDAY, None, slot="09:00")
                await registry.add(MONDAY, None, slot="17:00")
                blocks = await registry.blocks_for_day(MONDAY)
        assert not blocks.whole_day
        assert blocks.slots == frozenset({time(9), time(17)})

    async def test_slot_dropped_from_grid_stays_removable(self, service, session_maker):
        await service.add_blackout(MONDAY, "Late viewing off", slot="17:00")
        # 17:00 later removed from SLOT_TIMES
        shorter = BookingService(session_maker, SlotCalendar(SLOTS[:-1]), retry_backoff_seconds=0)
        assert len(await shorter.list_blackouts()) == 1
        assert await shorter.remove_blackout(MONDAY, "17:00") is True
        assert await shorter.list_blackouts() == []
        with pytest.raises(InvalidInput):
            await shorter.add_blackout(MONDAY, None, slot="17:00")
