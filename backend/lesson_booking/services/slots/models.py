# backend/lesson_booking/services/slots/models.py
"""
Transient time-window types shared by the slot pipeline.

All windows are half-open [start, end) with timezone-aware datetimes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow requires timezone-aware datetimes")
        if self.end < self.start:
            raise ValueError(f"Window ends before it starts: {self.start} > {self.end}")

    @classmethod
    def of(cls, start: datetime, duration_minutes: int):
        return cls(start, start + timedelta(minutes=duration_minutes))

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeWindow") -> bool:
        # Touching endpoints do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeWindow") -> bool:
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True)
class CandidateSlot(TimeWindow):
    """A generated, not-yet-validated bookable window."""

    def to_json(self) -> dict:
        return {"startISO": self.start.isoformat(), "endISO": self.end.isoformat()}


@dataclass(frozen=True)
class BusyInterval(TimeWindow):
    """An occupied window; `source` is a calendar id or "bookings"."""

    source: str = ""
