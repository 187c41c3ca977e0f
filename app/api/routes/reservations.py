from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_booking_service, get_current_actor, get_now, get_optional_actor
from app.api.schemas.reservation import BookVisitRequest, RescheduleRequest, StatisticsResponse
from app.models.reservation import (
    ClientInfo,
    Reservation,
    ReservationFilter,
    ReservationKind,
    ReservationPatch,
    ReservationPublic,
    ReservationStatus,
)
from app.services.booking_service import BookingService

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _to_public(r: Reservation) -> ReservationPublic:
    return ReservationPublic.model_validate(r, from_attributes=True)


@router.post("", response_model=ReservationPublic, status_code=status.HTTP_201_CREATED)
async def book_visit(
    body: BookVisitRequest,
    service: BookingService = Depends(get_booking_service),
    actor_id: str | None = Depends(get_optional_actor),
    now: datetime = Depends(get_now),
) -> ReservationPublic:
    """Request a property visit. Anonymous requests are accepted; staff requests record the owner."""
    reservation = await service.request_booking(
        property_id=body.property_id,
        slot_at=body.slot_at,
        client=ClientInfo(
            client_name=body.client_name,
            client_email=body.client_email,
            client_phone=body.client_phone,
        ),
        kind=body.kind,
        now=now,
        actor_id=actor_id,
        notes=body.notes,
    )
    return _to_public(reservation)


@router.get("", response_model=list[ReservationPublic])
async def list_reservations(
    status_param: ReservationStatus | None = Query(None, alias="status"),
    kind: ReservationKind | None = Query(None),
    property_id: int | None = Query(None),
    owner_id: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> list[ReservationPublic]:
    criteria = ReservationFilter(
        status=status_param,
        kind=kind,
        property_id=property_id,
        owner_id=owner_id,
        date_from=date_from,
        date_to=date_to,
    )
    reservations = await service.list_reservations(criteria)
    return [_to_public(r) for r in reservations]


@router.get("/statistics", response_model=StatisticsResponse)
async def reservation_statistics(
    owner_id: str | None = Query(None),
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> StatisticsResponse:
    return StatisticsResponse(**await service.get_statistics(owner_id))


@router.get("/upcoming", response_model=list[ReservationPublic])
async def upcoming_reservations(
    days: int | None = Query(None, ge=1, le=366),
    owner_id: str | None = Query(None),
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
    now: datetime = Depends(get_now),
) -> list[ReservationPublic]:
    """Pending and confirmed visits from now on, for the calendar view."""
    reservations = await service.list_upcoming(now, days, owner_id)
    return [_to_public(r) for r in reservations]


@router.get("/{reservation_id}", response_model=ReservationPublic)
async def get_reservation(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> ReservationPublic:
    return _to_public(await service.get_booking(reservation_id))


@router.patch("/{reservation_id}", response_model=ReservationPublic)
async def update_reservation(
    reservation_id: UUID,
    body: ReservationPatch,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> ReservationPublic:
    return _to_public(await service.update_booking(reservation_id, body, actor_id))


@router.post("/{reservation_id}/reschedule", response_model=ReservationPublic)
async def reschedule_reservation(
    reservation_id: UUID,
    body: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
    now: datetime = Depends(get_now),
) -> ReservationPublic:
    reservation = await service.reschedule_booking(reservation_id, body.slot_at, actor_id, now)
    return _to_public(reservation)


@router.post("/{reservation_id}/confirm", response_model=ReservationPublic)
async def confirm_reservation(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> ReservationPublic:
    return _to_public(await service.confirm_booking(reservation_id, actor_id))


@router.post("/{reservation_id}/cancel", response_model=ReservationPublic)
async def cancel_reservation(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> ReservationPublic:
    return _to_public(await service.cancel_booking(reservation_id, actor_id))


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> None:
    await service.remove_booking(reservation_id, actor_id)
