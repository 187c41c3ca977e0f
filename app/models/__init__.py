from app.models.blackout import BlackoutEntry, BlackoutPublic
from app.models.reservation import (
    ClientInfo,
    Reservation,
    ReservationFilter,
    ReservationKind,
    ReservationPatch,
    ReservationPublic,
    ReservationStatus,
)

__all__ = [
    "BlackoutEntry",
    "BlackoutPublic",
    "ClientInfo",
    "Reservation",
    "ReservationFilter",
    "ReservationKind",
    "ReservationPatch",
    "ReservationPublic",
    "ReservationStatus",
]
