# backend/lesson_booking/services/slots/availability.py
"""
Free slots for a location over a time window.

Pipeline:
  1. Slot generator: candidates from the location's availability rule
  2. Busy sources: external calendars + stored bookings over the window
  3. Conflict filter: drop overlapping candidates and those inside the
     minimum-notice window

approximate_slots() is the degraded variant (steps 1 and 3 without busy
knowledge). Its result is always flagged approximate; it is never used as a
silent fallback for list_free_slots().
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from .busy import BusySource
from .calculator import calculate_window_slots
from .config import BookingConfig, get_booking_config
from .models import BusyInterval, CandidateSlot, TimeWindow
from .rules import AvailabilityRule


@dataclass(frozen=True)
class SlotListing:
    slots: list[CandidateSlot]
    approximate: bool = False

    def to_json(self) -> dict:
        body = {"slots": [s.to_json() for s in self.slots]}
        if self.approximate:
            body["approximate"] = True
        return body


def filter_free(
    candidates: Iterable[CandidateSlot],
    busy: Iterable[BusyInterval],
    notice_hours: int | None = None,
    now: datetime | None = None,
) -> list[CandidateSlot]:
    """
    Conflict filter.

    Keeps candidates that overlap no busy interval (half-open, so touching
    ends do not conflict) and start no earlier than now + notice_hours.
    Order of candidates is preserved.
    """
    if notice_hours is None:
        notice_hours = 12
    now = now or datetime.now(timezone.utc)
    cutoff = now + timedelta(hours=notice_hours)
    busy = list(busy)

    return [
        c for c in candidates
        if c.start >= cutoff and not any(c.overlaps(b) for b in busy)
    ]


def list_free_slots(
    rule: AvailabilityRule | None,
    window: TimeWindow,
    busy_source: BusySource,
    duration_minutes: int | None = None,
    step_minutes: int | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> SlotListing:
    """Validated listing: generator → busy sources → conflict filter."""
    config = config or get_booking_config()

    candidates = calculate_window_slots(rule, window, duration_minutes, step_minutes, config)
    if not candidates:
        return SlotListing(slots=[])

    # Busy lookup only over the span the candidates actually cover
    span = TimeWindow(candidates[0].start, max(c.end for c in candidates))
    busy = busy_source.fetch_busy(span, rule.location_id)

    return SlotListing(
        slots=filter_free(candidates, busy, config.min_advance_hours, now),
    )


def approximate_slots(
    rule: AvailabilityRule | None,
    window: TimeWindow,
    duration_minutes: int | None = None,
    step_minutes: int | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> SlotListing:
    """Rule-only listing without busy intervals; flagged approximate."""
    config = config or get_booking_config()
    candidates = calculate_window_slots(rule, window, duration_minutes, step_minutes, config)
    return SlotListing(
        slots=filter_free(candidates, [], config.min_advance_hours, now),
        approximate=True,
    )
