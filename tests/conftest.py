"""Shared test fixtures and helpers."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")

from datetime import date, datetime, time

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.db import build_session_maker, init_db
from app.models.reservation import ClientInfo, ReservationKind
from app.services.booking_service import BookingService
from app.services.expiration_sweeper import ExpirationSweeper
from app.services.slot_calendar import SlotCalendar

SLOTS = [time(h) for h in (9, 10, 11, 12, 14, 15, 16, 17)]

FRIDAY = date(2025, 10, 10)
SATURDAY = date(2025, 10, 11)
SUNDAY = date(2025, 10, 12)
MONDAY = date(2025, 10, 13)
TUESDAY = date(2025, 10, 14)

# Friday morning before the test week
NOW = datetime(2025, 10, 10, 8, 0)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def make_client(name: str = "Jean Dupont") -> ClientInfo:
    return ClientInfo(
        client_name=name,
        client_email="jean.dupont@example.com",
        client_phone="+33 6 12 34 56 78",
    )


@pytest.fixture
def calendar():
    return SlotCalendar(SLOTS, timezone="UTC", slot_duration_minutes=60)


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'visits.db'}")

    # pysqlite defers BEGIN until the first write, which breaks SAVEPOINT;
    # emit BEGIN ourselves as the SQLAlchemy docs recommend.
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest.fixture
def service(session_maker, calendar):
    return BookingService(session_maker, calendar, retry_backoff_seconds=0)


@pytest.fixture
def sweeper(session_maker, calendar):
    return ExpirationSweeper(session_maker, calendar, interval_seconds=3600, complete_confirmed=True)


@pytest.fixture
def book(service):
    """Book a visit on property 1 as a public client, unless told otherwise."""

    async def _book(
        slot_at: datetime,
        property_id: int = 1,
        now: datetime = NOW,
        actor_id: str | None = None,
        kind: ReservationKind = ReservationKind.SALE_VISIT,
    ):
        return await service.request_booking(
            property_id, slot_at, make_client(), kind, now, actor_id=actor_id
        )

    return _book
