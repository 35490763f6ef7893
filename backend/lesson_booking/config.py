# backend/lesson_booking/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # project root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./booking.db"
    redis_url: str = "redis://localhost:6379/0"

    timezone: str = "Europe/Rome"
    booking_notice_hours: int = 12
    horizon_days: int = 60
    lock_ttl_seconds: int = 30
    max_duration_minutes: int = 480

    # Google Calendar (service account, raw JSON or base64)
    google_service_account: str | None = None
    selected_calendar_ids: str = "primary"
    default_calendar_id: str | None = None
    google_request_timeout: float = 10.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite path → absolute, anchored at project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url

    @property
    def calendar_ids(self) -> list[str]:
        """Calendars whose busy periods block slots (SELECTED_CALENDAR_IDS)."""
        return [c.strip() for c in self.selected_calendar_ids.split(",") if c.strip()]


settings = Settings()
