# backend/lesson_booking/services/store/base.py
"""
Store contracts for bookings and reservation locks.

Coordination between concurrent reservation attempts (possibly in different
processes) happens only through these primitives:

- BookingStore.create_if_absent: atomic insert keyed by the deterministic
  slot id; a live (non-cancelled) booking with the same id wins.
- LockStore.acquire: atomic create-with-TTL; returns an owner token or None.

Any backend (Redis, a relational table with a primary key, a dict behind a
mutex) must honour these semantics.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

from ..slots.models import TimeWindow

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)


@dataclass(frozen=True)
class Booking:
    id: str
    location_id: str
    service_id: str
    start: datetime
    end: datetime
    client_name: str
    client_email: str | None = None
    client_phone: str | None = None
    sport: str | None = None
    lesson_type: str | None = None
    notes: str | None = None
    status: str = STATUS_PENDING
    calendar_id: str | None = None
    external_event_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.status not in BOOKING_STATUSES:
            raise ValueError(f"Unknown booking status: {self.status!r}")

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start, self.end)

    @property
    def duration_minutes(self) -> int:
        return self.window.duration_minutes

    @property
    def is_active(self) -> bool:
        return self.status != STATUS_CANCELLED

    def with_status(self, status: str, external_event_id: str | None = None) -> "Booking":
        return replace(self, status=status, external_event_id=external_event_id)


class BookingStore(Protocol):

    def create_if_absent(self, booking: Booking) -> bool:
        """
        Insert `booking` unless a non-cancelled booking with the same id exists.

        Returns:
            True if written, False on conflict.

        Raises:
            StoreUnavailable: backend unreachable.
        """
        ...

    def get(self, booking_id: str) -> Booking | None:
        ...

    def list_overlapping(self, location_id: str, window: TimeWindow) -> list[Booking]:
        """Non-cancelled bookings at location_id overlapping window."""
        ...


class LockStore(Protocol):

    def acquire(self, key: str, ttl_seconds: int) -> str | None:
        """Create the lock if absent or expired. Returns owner token or None."""
        ...

    def release(self, key: str, token: str) -> bool:
        """Delete the lock if still owned by token."""
        ...
