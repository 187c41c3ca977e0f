from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.models.reservation import (
    ACTIVE_STATUSES,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    _utc_naive_now,
)
from app.services.slot_calendar import to_naive_utc


def _active() -> ColumnElement[bool]:
    """The one definition of an occupying reservation, shared by every conflict query."""
    return Reservation.status.in_([s.value for s in ACTIVE_STATUSES])


def _active_for_property(property_id: int, exclude_id: UUID | None) -> list[ColumnElement[bool]]:
    clauses = [Reservation.property_id == property_id, _active()]
    if exclude_id is not None:
        clauses.append(Reservation.id != exclude_id)
    return clauses


class ReservationStore:
    """Reservation persistence. Reports existence only; conflicts are judged by the booking service."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_conflicting(
        self, property_id: int, slot_at: datetime, exclude_id: UUID | None = None
    ) -> Reservation | None:
        """Same filter as ``active_slots_between``, which the booking engine reads instead."""
        result = await self.session.execute(
            select(Reservation).where(
                *_active_for_property(property_id, exclude_id),
                Reservation.slot_at == to_naive_utc(slot_at),
            )
        )
        return result.scalars().first()

    async def active_slots_between(
        self,
        property_id: int,
        start_inclusive: datetime,
        end_exclusive: datetime,
        exclude_id: UUID | None = None,
    ) -> set[datetime]:
        """Active slot starts in a window; keep in step with ``find_conflicting``."""
        result = await self.session.execute(
            select(Reservation.slot_at).where(
                *_active_for_property(property_id, exclude_id),
                Reservation.slot_at >= start_inclusive,
                Reservation.slot_at < end_exclusive,
            )
        )
        return {row[0] for row in result.all()}

    async def insert(self, reservation: Reservation) -> Reservation:
        """Flush immediately so a unique-index violation surfaces here."""
        self.session.add(reservation)
        await self.session.flush()
        await self.session.refresh(reservation)
        return reservation

    async def get(self, reservation_id: UUID) -> Reservation:
        reservation = await self.session.get(Reservation, reservation_id, populate_existing=True)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    async def update(self, reservation_id: UUID, patch: dict[str, Any]) -> Reservation:
        reservation = await self.get(reservation_id)
        for key, value in patch.items():
            setattr(reservation, key, value)
        reservation.updated_at = _utc_naive_now()
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def transition(
        self, reservation_id: UUID, expected: ReservationStatus, new: ReservationStatus
    ) -> bool:
        """Conditional status change. Returns False if the row is no longer in ``expected``."""
        result = await self.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == expected.value)
            .values(status=new.value, updated_at=_utc_naive_now())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def remove(self, reservation_id: UUID) -> None:
        result = await self.session.execute(delete(Reservation).where(Reservation.id == reservation_id))
        if not result.rowcount:
            raise NotFound(f"Reservation {reservation_id} not found")

    async def list_by_filter(self, criteria: ReservationFilter) -> list[Reservation]:
        q = select(Reservation).order_by(Reservation.slot_at, Reservation.created_at)
        if criteria.status is not None:
            q = q.where(Reservation.status == criteria.status.value)
        if criteria.kind is not None:
            q = q.where(Reservation.kind == criteria.kind.value)
        if criteria.property_id is not None:
            q = q.where(Reservation.property_id == criteria.property_id)
        if criteria.owner_id is not None:
            q = q.where(Reservation.owner_id == criteria.owner_id)
        if criteria.date_from is not None:
            q = q.where(Reservation.slot_at >= to_naive_utc(criteria.date_from))
        if criteria.date_to is not None:
            q = q.where(Reservation.slot_at <= to_naive_utc(criteria.date_to))
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def list_expired_candidates(self, now: datetime) -> list[Reservation]:
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.PENDING.value,
                Reservation.slot_at < to_naive_utc(now),
            )
            .order_by(Reservation.slot_at)
        )
        return list(result.scalars().all())

    async def list_completion_candidates(self, started_before: datetime) -> list[Reservation]:
        """Confirmed visits whose slot started before ``started_before``."""
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.slot_at <= to_naive_utc(started_before),
            )
            .order_by(Reservation.slot_at)
        )
        return list(result.scalars().all())

    async def list_upcoming(
        self, start: datetime, end: datetime, owner_id: str | None = None
    ) -> list[Reservation]:
        q = (
            select(Reservation)
            .where(
                _active(),
                Reservation.slot_at >= to_naive_utc(start),
                Reservation.slot_at <= to_naive_utc(end),
            )
            .order_by(Reservation.slot_at)
        )
        if owner_id is not None:
            q = q.where(Reservation.owner_id == owner_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def count_by_status_and_kind(
        self, owner_id: str | None = None
    ) -> tuple[dict[str, int], dict[str, int]]:
        by_status: dict[str, int] = {}
        by_kind: dict[str, int] = {}
        for column, out in ((Reservation.status, by_status), (Reservation.kind, by_kind)):
            q = select(column, func.count()).group_by(column)
            if owner_id is not None:
                q = q.where(Reservation.owner_id == owner_id)
            result = await self.session.execute(q)
            for key, count in result.all():
                out[str(key)] = int(count)
        return by_status, by_kind
