# backend/lesson_booking/services/store/memory.py
"""
In-memory stores. A mutex makes each primitive atomic within one process,
which is enough for tests and local runs; multi-instance deployments use
the SQL/Redis stores.
"""

import threading
import time
import uuid

from ..slots.models import TimeWindow
from .base import Booking


class MemoryBookingStore:

    def __init__(self):
        self._bookings: dict[str, Booking] = {}
        self._mutex = threading.Lock()

    def create_if_absent(self, booking: Booking) -> bool:
        with self._mutex:
            existing = self._bookings.get(booking.id)
            if existing is not None and existing.is_active:
                return False
            self._bookings[booking.id] = booking
            return True

    def get(self, booking_id: str) -> Booking | None:
        with self._mutex:
            return self._bookings.get(booking_id)

    def list_overlapping(self, location_id: str, window: TimeWindow) -> list[Booking]:
        with self._mutex:
            bookings = list(self._bookings.values())
        return [
            b for b in bookings
            if b.location_id == location_id and b.is_active and b.window.overlaps(window)
        ]

    def all(self) -> list[Booking]:
        with self._mutex:
            return list(self._bookings.values())


class MemoryLockStore:

    def __init__(self, clock=time.monotonic):
        self._locks: dict[str, tuple[str, float]] = {}
        self._mutex = threading.Lock()
        self._clock = clock

    def acquire(self, key: str, ttl_seconds: int) -> str | None:
        now = self._clock()
        with self._mutex:
            held = self._locks.get(key)
            if held is not None and held[1] > now:
                return None
            token = uuid.uuid4().hex
            self._locks[key] = (token, now + ttl_seconds)
            return token

    def release(self, key: str, token: str) -> bool:
        with self._mutex:
            held = self._locks.get(key)
            if held is None or held[0] != token:
                return False
            del self._locks[key]
            return True

    def is_locked(self, key: str) -> bool:
        with self._mutex:
            held = self._locks.get(key)
            return held is not None and held[1] > self._clock()
