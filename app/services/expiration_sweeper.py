import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models.reservation import ReservationStatus
from app.services.reservation_store import ReservationStore
from app.services.slot_calendar import SlotCalendar, to_naive_utc, utc_naive_now

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    completed: int = 0
    failed: int = 0


class ExpirationSweeper:
    """Moves stale reservations out of the active set.

    Pending visits whose slot has started become ``expired``. Confirmed visits
    whose slot has ended become ``completed`` when ``complete_confirmed`` is set.
    Every item is its own conditional update, so an admin confirming a visit
    at the same moment either wins (the sweep skips it) or loses (confirm sees
    an expired reservation).
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        calendar: SlotCalendar,
        *,
        interval_seconds: float | None = None,
        complete_confirmed: bool | None = None,
        store_timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_naive_now,
    ):
        self.session_maker = session_maker
        self.calendar = calendar
        self.interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self.complete_confirmed = (
            settings.complete_confirmed_on_sweep if complete_confirmed is None else complete_confirmed
        )
        self.store_timeout_seconds = store_timeout_seconds or settings.store_timeout_seconds
        self.clock = clock
        self._task: asyncio.Task | None = None

    async def _transition(
        self, reservation_id: UUID, expected: ReservationStatus, new: ReservationStatus
    ) -> bool:
        async with asyncio.timeout(self.store_timeout_seconds):
            async with self.session_maker() as session:
                async with session.begin():
                    return await ReservationStore(session).transition(reservation_id, expected, new)

    async def _candidates(self, now: datetime) -> tuple[list[UUID], list[UUID]]:
        completed: list[UUID] = []
        async with asyncio.timeout(self.store_timeout_seconds):
            async with self.session_maker() as session:
                store = ReservationStore(session)
                expired = [r.id for r in await store.list_expired_candidates(now)]
                if self.complete_confirmed:
                    ended_before = now - self.calendar.slot_duration
                    completed = [r.id for r in await store.list_completion_candidates(ended_before)]
        return expired, completed

    async def sweep(self, now: datetime) -> SweepResult:
        now = to_naive_utc(now)
        result = SweepResult()
        expired_ids, completed_ids = await self._candidates(now)
        batches = (
            (expired_ids, ReservationStatus.PENDING, ReservationStatus.EXPIRED, "expired"),
            (completed_ids, ReservationStatus.CONFIRMED, ReservationStatus.COMPLETED, "completed"),
        )
        for ids, expected, new, counter in batches:
            for reservation_id in ids:
                try:
                    changed = await self._transition(reservation_id, expected, new)
                except (SQLAlchemyError, TimeoutError) as e:
                    result.failed += 1
                    logger.warning("Sweep could not mark reservation %s %s: %s", reservation_id, new.value, e)
                    continue
                if changed:
                    setattr(result, counter, getattr(result, counter) + 1)
        if result.expired or result.completed or result.failed:
            logger.info(
                "Reservation sweep: %d expired, %d completed, %d failed",
                result.expired, result.completed, result.failed,
            )
        return result

    async def run_once(self) -> SweepResult | None:
        try:
            return await self.sweep(self.clock())
        except Exception as e:
            logger.exception("Reservation sweep failed: %s", e)
            return None

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="reservation-sweeper")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
