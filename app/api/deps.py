from datetime import datetime

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_access_token
from app.services.booking_service import BookingService
from app.services.slot_calendar import utc_naive_now

security = HTTPBearer(auto_error=False)
optional_bearer = HTTPBearer(auto_error=False)


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_now() -> datetime:
    """Current naive UTC instant; overridden in tests."""
    return utc_naive_now()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """Staff account id from the bearer token. Accounts live in the auth service."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    actor_id = decode_access_token(credentials.credentials)
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_id


async def get_optional_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> str | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return decode_access_token(credentials.credentials)
