# backend/lesson_booking/services/slots/config.py
"""
Booking configuration for slots calculation and reservations.
"""

from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        horizon_days: Widest listing window accepted, in days
        min_advance_hours: Minimum notice before a slot can be booked
        default_slot_step_minutes: Grid step when a location has no rule value
        lock_ttl_seconds: Lifetime of a reservation lock
        max_duration_minutes: Longest lesson a client can request
        timezone: Operating timezone of all locations
    """
    horizon_days: int = 60
    min_advance_hours: int = 12
    default_slot_step_minutes: int = 60
    lock_ttl_seconds: int = 30
    max_duration_minutes: int = 480
    timezone: str = "Europe/Rome"

    def __post_init__(self):
        """Validate configuration."""
        if self.default_slot_step_minutes <= 0:
            raise ValueError(
                f"default_slot_step_minutes must be > 0, got {self.default_slot_step_minutes}"
            )
        if self.min_advance_hours < 0:
            raise ValueError(f"min_advance_hours must be >= 0, got {self.min_advance_hours}")
        if self.lock_ttl_seconds <= 0:
            raise ValueError(f"lock_ttl_seconds must be > 0, got {self.lock_ttl_seconds}")
        ZoneInfo(self.timezone)  # raises on unknown zone

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton), built from settings."""
    return BookingConfig(
        horizon_days=settings.horizon_days,
        min_advance_hours=settings.booking_notice_hours,
        lock_ttl_seconds=settings.lock_ttl_seconds,
        max_duration_minutes=settings.max_duration_minutes,
        timezone=settings.timezone,
    )


def time_str_to_minutes(time_str: str) -> int:
    """"HH:MM" → minutes since midnight."""
    hours, minutes = time_str.strip().split(":")
    h, m = int(hours), int(minutes)
    if not (0 <= h <= 24 and 0 <= m < 60) or (h == 24 and m != 0):
        raise ValueError(f"Invalid time: {time_str!r}")
    return h * 60 + m


def minutes_to_time_str(minutes: int) -> str:
    """Minutes since midnight → "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
