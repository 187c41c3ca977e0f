from datetime import datetime, time

from pydantic import BaseModel, EmailStr, Field

from app.models.reservation import ReservationKind


class AvailableSlotsResponse(BaseModel):
    property_id: int
    date: str  # YYYY-MM-DD
    slots: list[str]  # HH:MM, ascending


class BookVisitRequest(BaseModel):
    property_id: int
    client_name: str = Field(min_length=1)
    client_email: EmailStr
    client_phone: str = Field(min_length=1)
    kind: ReservationKind
    slot_at: datetime
    notes: str | None = None


class RescheduleRequest(BaseModel):
    slot_at: datetime


class StatisticsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_kind: dict[str, int]


class BlackoutCreateRequest(BaseModel):
    date: str  # YYYY-MM-DD
    slot: time | None = None
    reason: str | None = None
