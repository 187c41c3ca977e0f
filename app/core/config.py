from datetime import time
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = False

    # JWT (tokens are issued by the auth service; we only verify them)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Visit slot grid, as HH:MM in the business time zone
    slot_times: str = "09:00,10:00,11:00,12:00,14:00,15:00,16:00,17:00"
    slot_duration_minutes: int = 60
    business_timezone: str = "UTC"

    # Expiration sweep
    sweep_interval_seconds: int = 60 * 60
    complete_confirmed_on_sweep: bool = True

    # Store access
    store_timeout_seconds: float = 5.0
    transient_retry_attempts: int = 3
    transient_retry_backoff_seconds: float = 0.2

    upcoming_days: int = 30

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def slot_times_list(self) -> list[time]:
        return sorted(time.fromisoformat(s.strip()) for s in self.slot_times.split(",") if s.strip())


settings = Settings()
