from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_booking_service, get_current_actor
from app.api.schemas.reservation import BlackoutCreateRequest
from app.models.blackout import BlackoutEntry, BlackoutPublic
from app.services.booking_service import BookingService

router = APIRouter(prefix="/blackouts", tags=["blackouts"])


def _to_public(entry: BlackoutEntry) -> BlackoutPublic:
    return BlackoutPublic(
        id=entry.id,
        blackout_date=entry.blackout_date,
        slot=entry.slot,
        whole_day=entry.is_whole_day,
        reason=entry.reason,
        created_at=entry.created_at,
    )


@router.get("", response_model=list[BlackoutPublic])
async def list_blackouts(
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> list[BlackoutPublic]:
    return [_to_public(e) for e in await service.list_blackouts()]


@router.post("", response_model=BlackoutPublic, status_code=status.HTTP_201_CREATED)
async def add_blackout(
    body: BlackoutCreateRequest,
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> BlackoutPublic:
    """Block a whole day (no slot) or a single slot. Adding the same blackout twice is harmless."""
    entry = await service.add_blackout(body.date, body.reason, body.slot)
    return _to_public(entry)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def remove_blackout(
    date_param: str = Query(..., alias="date"),
    slot: str | None = Query(None),
    service: BookingService = Depends(get_booking_service),
    actor_id: str = Depends(get_current_actor),
) -> None:
    await service.remove_blackout(date_param, slot)
