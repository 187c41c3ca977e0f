import logging
from dataclasses import dataclass, field
from datetime import date, time

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidInput
from app.models.blackout import WHOLE_DAY_KEY, BlackoutEntry, slot_key
from app.services.slot_calendar import SlotCalendar, parse_date, parse_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayBlocks:
    whole_day: bool = False
    slots: frozenset[time] = field(default_factory=frozenset)

    def blocks(self, slot: time) -> bool:
        return self.whole_day or slot in self.slots


class BlackoutRegistry:
    """Administrator blackouts. Global, not scoped to a property.

    Works inside the caller's session so reads see every write committed
    before the current transaction started.
    """

    def __init__(self, session: AsyncSession, calendar: SlotCalendar):
        self.session = session
        self.calendar = calendar

    def _normalize(
        self, day: date | str, slot: time | str | None, on_grid: bool = True
    ) -> tuple[date, time | None]:
        d = parse_date(day)
        if slot is None:
            return d, None
        s = parse_slot(slot)
        if on_grid and s not in self.calendar.slots:
            raise InvalidInput(f"{s.strftime('%H:%M')} is not a visit slot")
        return d, s

    async def _find(self, day: date, slot: time | None) -> BlackoutEntry | None:
        result = await self.session.execute(
            select(BlackoutEntry).where(
                BlackoutEntry.blackout_date == day,
                BlackoutEntry.slot_key == slot_key(slot),
            )
        )
        return result.scalar_one_or_none()

    async def add(self, day: date | str, reason: str | None = None, slot: time | str | None = None) -> BlackoutEntry:
        d, s = self._normalize(day, slot)
        existing = await self._find(d, s)
        if existing:
            return existing
        entry = BlackoutEntry(blackout_date=d, slot=s, slot_key=slot_key(s), reason=reason)
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
                await self.session.flush()
        except IntegrityError:
            # Added concurrently by another admin; same effect
            existing = await self._find(d, s)
            if existing is None:
                raise
            return existing
        logger.info("Blackout added: %s %s (%s)", d, slot_key(s), reason or "no reason")
        return entry

    async def remove(self, day: date | str, slot: time | str | None = None) -> bool:
        # entries for slots dropped from the grid stay removable
        d, s = self._normalize(day, slot, on_grid=False)
        result = await self.session.execute(
            delete(BlackoutEntry).where(
                BlackoutEntry.blackout_date == d,
                BlackoutEntry.slot_key == slot_key(s),
            )
        )
        removed = bool(result.rowcount)
        if removed:
            logger.info("Blackout removed: %s %s", d, slot_key(s))
        return removed

    async def list_entries(self) -> list[BlackoutEntry]:
        result = await self.session.execute(
            select(BlackoutEntry).order_by(BlackoutEntry.blackout_date, BlackoutEntry.slot_key)
        )
        return list(result.scalars().all())

    async def blocks_for_day(self, day: date) -> DayBlocks:
        result = await self.session.execute(
            select(BlackoutEntry.slot_key, BlackoutEntry.slot).where(BlackoutEntry.blackout_date == day)
        )
        whole_day = False
        slots: set[time] = set()
        for key, slot in result.all():
            if key == WHOLE_DAY_KEY:
                whole_day = True
            elif slot is not None:
                slots.add(slot)
        return DayBlocks(whole_day=whole_day, slots=frozenset(slots))

    async def is_blocked(self, day: date | str, slot: time | str) -> bool:
        """Single-slot form of ``blocks_for_day``, which the booking engine reads instead."""
        d = parse_date(day)
        return (await self.blocks_for_day(d)).blocks(parse_slot(slot))
