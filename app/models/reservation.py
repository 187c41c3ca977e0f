from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class ReservationKind(str, Enum):
    SALE_VISIT = "sale_visit"
    RENTAL_VISIT = "rental_visit"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    COMPLETED = "completed"


# Statuses that occupy a slot
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
TERMINAL_STATUSES = (
    ReservationStatus.CANCELLED,
    ReservationStatus.EXPIRED,
    ReservationStatus.COMPLETED,
)

_ACTIVE_WHERE = sa.text("status IN ('pending', 'confirmed')")


class Reservation(SQLModel, table=True):
    __tablename__ = "reservations"
    __table_args__ = (
        # one active reservation per property and slot
        sa.Index(
            "uq_reservations_active_slot",
            "property_id",
            "slot_at",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    property_id: int = Field(index=True)
    client_name: str
    client_email: str
    client_phone: str
    kind: ReservationKind = Field(sa_type=sa.String(length=16))
    slot_at: datetime = Field(sa_type=sa.DateTime(), index=True)  # naive UTC slot start
    status: ReservationStatus = Field(
        default=ReservationStatus.PENDING, sa_type=sa.String(length=16), index=True
    )
    notes: str | None = None
    owner_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())


class ClientInfo(SQLModel):
    client_name: str
    client_email: str
    client_phone: str


# Patch fields that may be set to null; the rest map to NOT NULL columns
CLEARABLE_FIELDS = frozenset({"notes"})


class ReservationPatch(SQLModel):
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    kind: ReservationKind | None = None
    notes: str | None = None


class ReservationFilter(SQLModel):
    status: ReservationStatus | None = None
    kind: ReservationKind | None = None
    property_id: int | None = None
    owner_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class ReservationPublic(SQLModel):
    id: UUID
    property_id: int
    client_name: str
    client_email: str
    client_phone: str
    kind: ReservationKind
    slot_at: datetime
    status: ReservationStatus
    notes: str | None = None
    owner_id: str | None = None
    created_at: datetime
    updated_at: datetime
