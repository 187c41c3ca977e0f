from datetime import datetime
from uuid import uuid4

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from app.core.errors import NotFound
from app.models.blackout import BlackoutEntry
from app.models.reservation import Reservation, ReservationFilter, ReservationKind, ReservationStatus
from app.services.reservation_store import ReservationStore

from tests.conftest import MONDAY, at


def _reservation(slot_at: datetime, property_id: int = 1, status: ReservationStatus = ReservationStatus.PENDING):
    return Reservation(
        property_id=property_id,
        client_name="Claire Martin",
        client_email="claire@example.com",
        client_phone="0600000000",
        kind=ReservationKind.RENTAL_VISIT.value,
        slot_at=slot_at,
        status=status.value,
    )


async def _insert(session_maker, reservation: Reservation) -> Reservation:
    async with session_maker() as session:
        async with session.begin():
            return await ReservationStore(session).insert(reservation)


class TestConflicts:
    async def test_find_conflicting_only_sees_active(self, session_maker):
        await _insert(session_maker, _reservation(at(MONDAY, 9), status=ReservationStatus.CANCELLED))
        await _insert(session_maker, _reservation(at(MONDAY, 10), status=ReservationStatus.EXPIRED))
        confirmed = await _insert(session_maker, _reservation(at(MONDAY, 11), status=ReservationStatus.CONFIRMED))
        async with session_maker() as session:
            store = ReservationStore(session)
            assert await store.find_conflicting(1, at(MONDAY, 9)) is None
            assert await store.find_conflicting(1, at(MONDAY, 10)) is None
            assert (await store.find_conflicting(1, at(MONDAY, 11))).id == confirmed.id
            assert await store.find_conflicting(2, at(MONDAY, 11)) is None
            assert await store.find_conflicting(1, at(MONDAY, 11), exclude_id=confirmed.id) is None

    async def test_unique_index_rejects_second_active(self, session_maker):
        await _insert(session_maker, _reservation(at(MONDAY, 9)))
        with pytest.raises(IntegrityError):
            await _insert(session_maker, _reservation(at(MONDAY, 9), status=ReservationStatus.CONFIRMED))

    async def test_unique_index_ignores_inactive_rows(self, session_maker):
        await _insert(session_maker, _reservation(at(MONDAY, 9), status=ReservationStatus.CANCELLED))
        await _insert(session_maker, _reservation(at(MONDAY, 9), status=ReservationStatus.EXPIRED))
        await _insert(session_maker, _reservation(at(MONDAY, 9)))
        await _insert(session_maker, _reservation(at(MONDAY, 9), property_id=2))

    async def test_active_slots_between(self, session_maker):
        await _insert(session_maker, _reservation(at(MONDAY, 9)))
        await _insert(session_maker, _reservation(at(MONDAY, 15), status=ReservationStatus.CANCELLED))
        await _insert(session_maker, _reservation(at(MONDAY, 16), property_id=2))
        async with session_maker() as session:
            slots = await ReservationStore(session).active_slots_between(
                1, at(MONDAY, 0), datetime(2025, 10, 14)
            )
        assert slots == {at(MONDAY, 9)}


class TestLifecycle:
    async def test_get_and_remove_unknown(self, session_maker):
        async with session_maker() as session:
            async with session.begin():
                store = ReservationStore(session)
                with pytest.raises(NotFound):
                    await store.get(uuid4())
                with pytest.raises(NotFound):
                    await store.remove(uuid4())

    async def test_transition_is_conditional(self, session_maker):
        r = await _insert(session_maker, _reservation(at(MONDAY, 9)))
        async with session_maker() as session:
            async with session.begin():
                store = ReservationStore(session)
                assert await store.transition(r.id, ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
                assert not await store.transition(r.id, ReservationStatus.PENDING, ReservationStatus.EXPIRED)
                assert (await store.get(r.id)).status == ReservationStatus.CONFIRMED

    async def test_update_touches_updated_at(self, session_maker):
        r = await _insert(session_maker, _reservation(at(MONDAY, 9)))
        async with session_maker() as session:
            async with session.begin():
                updated = await ReservationStore(session).update(r.id, {"notes": "Bring keys"})
        assert updated.notes == "Bring keys"
        assert updated.updated_at >= r.updated_at

    async def test_list_expired_candidates(self, session_maker):
        stale = await _insert(session_maker, _reservation(at(MONDAY, 9)))
        await _insert(session_maker, _reservation(at(MONDAY, 10), status=ReservationStatus.CONFIRMED))
        await _insert(session_maker, _reservation(at(MONDAY, 14)))
        async with session_maker() as session:
            candidates = await ReservationStore(session).list_expired_candidates(at(MONDAY, 12))
        assert [c.id for c in candidates] == [stale.id]

    async def test_list_by_filter(self, session_maker):
        a = await _insert(session_maker, _reservation(at(MONDAY, 9)))
        await _insert(session_maker, _reservation(at(MONDAY, 10), property_id=2))
        c = await _insert(session_maker, _reservation(at(MONDAY, 11), status=ReservationStatus.CONFIRMED))
        async with session_maker() as session:
            store = ReservationStore(session)
            by_property = await store.list_by_filter(ReservationFilter(property_id=1))
            assert [r.id for r in by_property] == [a.id, c.id]
            by_status = await store.list_by_filter(ReservationFilter(status=ReservationStatus.CONFIRMED))
            assert [r.id for r in by_status] == [c.id]
            by_range = await store.list_by_filter(
                ReservationFilter(date_from=at(MONDAY, 10), date_to=at(MONDAY, 11))
            )
            assert len(by_range) == 2


def test_timestamps_stored_without_time_zone():
    columns = (
        Reservation.__table__.c.slot_at,
        Reservation.__table__.c.created_at,
        Reservation.__table__.c.updated_at,
        BlackoutEntry.__table__.c.created_at,
    )
    for column in columns:
        assert type(column.type) is sa.DateTime
        assert column.type.timezone is False
