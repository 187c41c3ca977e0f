from datetime import date, datetime

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_booking_service, get_now
from app.api.schemas.reservation import AvailableSlotsResponse
from app.services.booking_service import BookingService

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    property_id: int = Query(...),
    date_param: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> AvailableSlotsResponse:
    """Free visit slots for a property on a business date, ascending. Empty on weekends and blocked days."""
    slots = await service.get_available_slots(property_id, date_param, now)
    return AvailableSlotsResponse(
        property_id=property_id,
        date=date_param.isoformat(),
        slots=[s.strftime("%H:%M") for s in slots],
    )
