from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.core.errors import InvalidInput

WEEKEND = (5, 6)  # Saturday, Sunday


def parse_slot(value: str | time) -> time:
    """Parse an HH:MM slot value."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    try:
        parsed = time.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise InvalidInput(f"Invalid slot time {value!r}, expected HH:MM")
    return parsed.replace(second=0, microsecond=0)


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise InvalidInput(f"Invalid date {value!r}, expected YYYY-MM-DD")


class SlotCalendar:
    """The fixed daily grid of visit slots.

    All weekday and time-of-day computations go through ``localize`` so that
    one business time zone is used everywhere. Stored instants are naive UTC.
    """

    def __init__(self, slots: Iterable[time], timezone: str = "UTC", slot_duration_minutes: int = 60):
        self.slots: tuple[time, ...] = tuple(sorted({parse_slot(s) for s in slots}))
        try:
            self.tz = ZoneInfo(timezone)
        except ZoneInfoNotFoundError:
            raise InvalidInput(f"Unknown business time zone {timezone!r}")
        self.slot_duration = timedelta(minutes=slot_duration_minutes)

    @classmethod
    def from_settings(cls) -> "SlotCalendar":
        return cls(
            settings.slot_times_list,
            timezone=settings.business_timezone,
            slot_duration_minutes=settings.slot_duration_minutes,
        )

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in WEEKEND

    def slots_for_day(self, day: date) -> list[time]:
        if self.is_weekend(day):
            return []
        return list(self.slots)

    def localize(self, instant: datetime) -> tuple[date, time]:
        """Split an instant into (business date, business time-of-day). Naive means UTC."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        local = instant.astimezone(self.tz)
        return local.date(), local.time().replace(tzinfo=None)

    def to_instant(self, day: date, slot: time) -> datetime:
        """Naive UTC start of ``slot`` on business date ``day``."""
        local = datetime.combine(day, slot, tzinfo=self.tz)
        return local.astimezone(UTC).replace(tzinfo=None)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Naive UTC [start, end) covering the business date."""
        return self.to_instant(day, time(0, 0)), self.to_instant(day + timedelta(days=1), time(0, 0))


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)
