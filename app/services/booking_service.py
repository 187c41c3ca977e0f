"""Visit booking: acceptance, availability, reschedule and status changes.

Booking and availability both go through ``DayState.rejection`` so that a slot
reported free is exactly a slot ``request_booking`` would accept at that
instant. The check-then-insert runs under a per-(property, slot) lock and is
backed by the partial unique index on active reservations, which catches
writers in other processes.
"""
import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import (
    AlreadyTerminal,
    BookingError,
    DateBlocked,
    InvalidInput,
    InvalidSlot,
    PastDate,
    SlotBlocked,
    SlotTaken,
    Transient,
    WeekendUnavailable,
)
from app.models.blackout import BlackoutEntry
from app.models.reservation import (
    CLEARABLE_FIELDS,
    TERMINAL_STATUSES,
    ClientInfo,
    Reservation,
    ReservationFilter,
    ReservationKind,
    ReservationPatch,
    ReservationStatus,
)
from app.services.blackout_service import BlackoutRegistry, DayBlocks
from app.services.reservation_store import ReservationStore
from app.services.slot_calendar import SlotCalendar, parse_date, to_naive_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError, TimeoutError)


@dataclass(frozen=True)
class DayState:
    """Everything that decides bookability of one property on one business date."""

    day: date
    grid: tuple[time, ...]
    blocks: DayBlocks
    taken: frozenset[time]
    calendar: SlotCalendar

    def rejection(self, slot: time, now: datetime) -> BookingError | None:
        label = f"{self.day.isoformat()} {slot.strftime('%H:%M')}"
        if self.calendar.to_instant(self.day, slot) <= now:
            return PastDate(f"Visit time {label} is not in the future")
        if not self.grid:
            return WeekendUnavailable(f"No visits on weekends ({self.day.strftime('%A')})")
        if slot not in self.grid:
            return InvalidSlot(f"{slot.strftime('%H:%M')} is not a visit slot")
        if self.blocks.whole_day:
            return DateBlocked(f"{self.day.isoformat()} is unavailable for visits")
        if slot in self.blocks.slots:
            return SlotBlocked(f"Slot {label} is unavailable for visits")
        if slot in self.taken:
            return SlotTaken(f"Slot {label} is already booked")
        return None

    def free_slots(self, now: datetime) -> list[time]:
        return [s for s in self.grid if self.rejection(s, now) is None]


class BookingService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        calendar: SlotCalendar,
        *,
        store_timeout_seconds: float | None = None,
        retry_attempts: int | None = None,
        retry_backoff_seconds: float | None = None,
    ):
        self.session_maker = session_maker
        self.calendar = calendar
        self.store_timeout_seconds = store_timeout_seconds or settings.store_timeout_seconds
        self.retry_attempts = max(1, retry_attempts or settings.transient_retry_attempts)
        self.retry_backoff_seconds = (
            settings.transient_retry_backoff_seconds if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self._locks: weakref.WeakValueDictionary[tuple[int, datetime], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # -- plumbing -----------------------------------------------------------

    def _slot_lock(self, property_id: int, slot_at: datetime) -> asyncio.Lock:
        key = (property_id, slot_at)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _run(self, op: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``op`` in one transaction with a timeout; retry transient store failures."""
        attempt = 1
        while True:
            try:
                async with asyncio.timeout(self.store_timeout_seconds):
                    async with self.session_maker() as session:
                        async with session.begin():
                            return await op(session)
            except _TRANSIENT_ERRORS as e:
                if attempt >= self.retry_attempts:
                    logger.error("Store unavailable after %d attempt(s): %s", attempt, e)
                    raise Transient("Scheduling store is temporarily unavailable, retry later") from e
                delay = self.retry_backoff_seconds * 2 ** (attempt - 1)
                logger.warning("Transient store error (attempt %d), retrying in %.2fs: %s", attempt, delay, e)
                await asyncio.sleep(delay)
                attempt += 1

    async def _load_day(
        self, session: AsyncSession, property_id: int, day: date, exclude_id: UUID | None = None
    ) -> DayState:
        grid = tuple(self.calendar.slots_for_day(day))
        if not grid:
            return DayState(day, grid, DayBlocks(), frozenset(), self.calendar)
        blocks = await BlackoutRegistry(session, self.calendar).blocks_for_day(day)
        start, end = self.calendar.day_bounds(day)
        instants = await ReservationStore(session).active_slots_between(property_id, start, end, exclude_id)
        taken = frozenset(self.calendar.localize(i)[1] for i in instants)
        return DayState(day, grid, blocks, taken, self.calendar)

    # -- booking ------------------------------------------------------------

    async def request_booking(
        self,
        property_id: int,
        slot_at: datetime,
        client: ClientInfo,
        kind: ReservationKind,
        now: datetime,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> Reservation:
        """Accept a visit request as ``pending``. ``actor_id`` is None for public submissions."""
        slot_at = to_naive_utc(slot_at)
        now = to_naive_utc(now)
        day, slot = self.calendar.localize(slot_at)
        reservation_id = uuid4()

        async def op(session: AsyncSession) -> Reservation:
            # a retry after a timeout may find the row an earlier attempt committed
            committed = await session.get(Reservation, reservation_id)
            if committed is not None:
                return committed
            state = await self._load_day(session, property_id, day)
            error = state.rejection(slot, now)
            if error:
                raise error
            reservation = Reservation(
                id=reservation_id,
                property_id=property_id,
                client_name=client.client_name,
                client_email=client.client_email,
                client_phone=client.client_phone,
                kind=ReservationKind(kind).value,
                slot_at=slot_at,
                status=ReservationStatus.PENDING.value,
                notes=notes,
                owner_id=actor_id,
            )
            return await ReservationStore(session).insert(reservation)

        async with self._slot_lock(property_id, slot_at):
            try:
                reservation = await self._run(op)
            except IntegrityError as e:
                logger.info("Booking rejected for property %s at %s: slot taken (unique index)", property_id, slot_at)
                raise SlotTaken(f"Slot {day.isoformat()} {slot.strftime('%H:%M')} is already booked") from e
            except BookingError as e:
                logger.info("Booking rejected for property %s at %s: %s", property_id, slot_at, e.code)
                raise
        logger.info(
            "Booking %s accepted for property %s at %s (%s)",
            reservation.id, property_id, slot_at, "staff " + actor_id if actor_id else "public",
        )
        return reservation

    async def get_available_slots(self, property_id: int, day: date | str, now: datetime) -> list[time]:
        d = parse_date(day)
        now = to_naive_utc(now)

        async def op(session: AsyncSession) -> list[time]:
            state = await self._load_day(session, property_id, d)
            return state.free_slots(now)

        return await self._run(op)

    async def reschedule_booking(
        self, reservation_id: UUID, new_slot_at: datetime, actor_id: str | None, now: datetime
    ) -> Reservation:
        new_slot_at = to_naive_utc(new_slot_at)
        now = to_naive_utc(now)
        day, slot = self.calendar.localize(new_slot_at)
        current = await self.get_booking(reservation_id)

        async def op(session: AsyncSession) -> Reservation:
            store = ReservationStore(session)
            reservation = await store.get(reservation_id)
            if reservation.status in TERMINAL_STATUSES:
                raise AlreadyTerminal(f"Reservation {reservation_id} is {reservation.status}")
            state = await self._load_day(session, reservation.property_id, day, exclude_id=reservation_id)
            error = state.rejection(slot, now)
            if error:
                raise error
            return await store.update(reservation_id, {"slot_at": new_slot_at})

        async with self._slot_lock(current.property_id, new_slot_at):
            try:
                reservation = await self._run(op)
            except IntegrityError as e:
                raise SlotTaken(f"Slot {day.isoformat()} {slot.strftime('%H:%M')} is already booked") from e
        logger.info("Booking %s rescheduled to %s by %s", reservation_id, new_slot_at, actor_id)
        return reservation

    async def _set_status(
        self, reservation_id: UUID, target: ReservationStatus, allowed_from: tuple[ReservationStatus, ...]
    ) -> Reservation:
        async def op(session: AsyncSession) -> Reservation:
            store = ReservationStore(session)
            # Statuses only move forward, so this loop ends
            while True:
                reservation = await store.get(reservation_id)
                status = ReservationStatus(reservation.status)
                if status == target:
                    return reservation
                if status not in allowed_from:
                    raise AlreadyTerminal(f"Reservation {reservation_id} is {status.value}")
                if await store.transition(reservation_id, status, target):
                    return await store.get(reservation_id)

        return await self._run(op)

    async def cancel_booking(self, reservation_id: UUID, actor_id: str | None) -> Reservation:
        """Cancelling an already cancelled booking succeeds without change."""
        reservation = await self._set_status(
            reservation_id,
            ReservationStatus.CANCELLED,
            (ReservationStatus.PENDING, ReservationStatus.CONFIRMED),
        )
        logger.info("Booking %s cancelled by %s", reservation_id, actor_id)
        return reservation

    async def confirm_booking(self, reservation_id: UUID, actor_id: str | None) -> Reservation:
        reservation = await self._set_status(
            reservation_id, ReservationStatus.CONFIRMED, (ReservationStatus.PENDING,)
        )
        logger.info("Booking %s confirmed by %s", reservation_id, actor_id)
        return reservation

    async def update_booking(
        self, reservation_id: UUID, patch: ReservationPatch, actor_id: str | None
    ) -> Reservation:
        """Contact details, kind and notes. Time changes go through ``reschedule_booking``."""
        changes: dict[str, Any] = patch.model_dump(exclude_unset=True)
        cleared = sorted(k for k, v in changes.items() if v is None and k not in CLEARABLE_FIELDS)
        if cleared:
            raise InvalidInput(f"{', '.join(cleared)} cannot be cleared")
        if changes.get("kind") is not None:
            changes["kind"] = ReservationKind(changes["kind"]).value

        async def op(session: AsyncSession) -> Reservation:
            return await ReservationStore(session).update(reservation_id, changes)

        reservation = await self._run(op)
        logger.info("Booking %s updated by %s: %s", reservation_id, actor_id, sorted(changes))
        return reservation

    async def remove_booking(self, reservation_id: UUID, actor_id: str | None) -> None:
        async def op(session: AsyncSession) -> None:
            await ReservationStore(session).remove(reservation_id)

        await self._run(op)
        logger.info("Booking %s removed by %s", reservation_id, actor_id)

    async def get_booking(self, reservation_id: UUID) -> Reservation:
        async def op(session: AsyncSession) -> Reservation:
            return await ReservationStore(session).get(reservation_id)

        return await self._run(op)

    async def list_reservations(self, criteria: ReservationFilter) -> list[Reservation]:
        async def op(session: AsyncSession) -> list[Reservation]:
            return await ReservationStore(session).list_by_filter(criteria)

        return await self._run(op)

    async def list_upcoming(
        self, now: datetime, days: int | None = None, owner_id: str | None = None
    ) -> list[Reservation]:
        now = to_naive_utc(now)
        end = now + timedelta(days=days if days is not None else settings.upcoming_days)

        async def op(session: AsyncSession) -> list[Reservation]:
            return await ReservationStore(session).list_upcoming(now, end, owner_id)

        return await self._run(op)

    async def get_statistics(self, owner_id: str | None = None) -> dict:
        async def op(session: AsyncSession) -> tuple[dict[str, int], dict[str, int]]:
            return await ReservationStore(session).count_by_status_and_kind(owner_id)

        by_status, by_kind = await self._run(op)
        return {"total": sum(by_status.values()), "by_status": by_status, "by_kind": by_kind}

    # -- blackouts ----------------------------------------------------------

    async def add_blackout(
        self, day: date | str, reason: str | None = None, slot: time | str | None = None
    ) -> BlackoutEntry:
        async def op(session: AsyncSession) -> BlackoutEntry:
            return await BlackoutRegistry(session, self.calendar).add(day, reason, slot)

        return await self._run(op)

    async def remove_blackout(self, day: date | str, slot: time | str | None = None) -> bool:
        async def op(session: AsyncSession) -> bool:
            return await BlackoutRegistry(session, self.calendar).remove(day, slot)

        return await self._run(op)

    async def list_blackouts(self) -> list[BlackoutEntry]:
        async def op(session: AsyncSession) -> list[BlackoutEntry]:
            return await BlackoutRegistry(session, self.calendar).list_entries()

        return await self._run(op)
