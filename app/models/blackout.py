from datetime import UTC, date, datetime, time

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

WHOLE_DAY_KEY = "*"


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def slot_key(slot: time | None) -> str:
    """Non-null key so (date, whole-day) is unique too; NULLs never collide in UNIQUE."""
    return WHOLE_DAY_KEY if slot is None else slot.strftime("%H:%M")


class BlackoutEntry(SQLModel, table=True):
    __tablename__ = "blackouts"
    __table_args__ = (
        sa.UniqueConstraint("blackout_date", "slot_key", name="uq_blackouts_date_slot"),
    )

    id: int | None = Field(default=None, primary_key=True)
    blackout_date: date = Field(index=True)
    slot: time | None = None  # None blocks the whole day
    slot_key: str = Field(max_length=5)
    reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())

    @property
    def is_whole_day(self) -> bool:
        return self.slot is None


class BlackoutPublic(SQLModel):
    id: int
    blackout_date: date
    slot: time | None = None
    whole_day: bool
    reason: str | None = None
    created_at: datetime
