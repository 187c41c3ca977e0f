import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import blackouts, reservations, slots
from app.core import errors
from app.core.config import _ENV_FILE, settings
from app.core.db import async_session_maker
from app.services.booking_service import BookingService
from app.services.expiration_sweeper import ExpirationSweeper
from app.services.slot_calendar import SlotCalendar

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[errors.BookingError], int] = {
    errors.InvalidInput: 422,
    errors.PastDate: 400,
    errors.WeekendUnavailable: 400,
    errors.InvalidSlot: 400,
    errors.DateBlocked: 409,
    errors.SlotBlocked: 409,
    errors.SlotTaken: 409,
    errors.NotFound: 404,
    errors.AlreadyTerminal: 409,
    errors.Transient: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    calendar = SlotCalendar.from_settings()
    app.state.booking_service = BookingService(async_session_maker, calendar)
    sweeper = ExpirationSweeper(async_session_maker, calendar)
    logger.info(
        "Visit slots %s (%s); reservation sweep every %ds",
        ",".join(s.strftime("%H:%M") for s in calendar.slots),
        settings.business_timezone,
        sweeper.interval_seconds,
    )
    # Sweeps once at startup, then on the interval
    sweeper.start()
    yield
    await sweeper.stop()


app = FastAPI(
    title="Visit Scheduler API",
    description="Property visit booking: slots, reservations, blackouts",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(slots.router, prefix="/api/v1")
app.include_router(reservations.router, prefix="/api/v1")
app.include_router(blackouts.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(errors.BookingError)
async def booking_error_handler(request: Request, exc: errors.BookingError) -> JSONResponse:
    """Rejections carry a code so clients can tell blocked from taken from invalid."""
    status_code = _ERROR_STATUS.get(type(exc), 400)
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, errors.Transient):
        headers["Retry-After"] = "1"
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
