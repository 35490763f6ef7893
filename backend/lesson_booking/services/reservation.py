"""
backend/lesson_booking/services/reservation.py

Reservation transaction: claims one slot exactly once.

Per attempt:
  Locking → Validating → (MirroringExternal) → Persisting → Released

- Locking: TTL lock keyed by the deterministic slot id; a live lock means
  another attempt is in progress → SlotLocked.
- Validating: busy sources re-checked for exactly [start, end) → a booking or
  calendar event that landed since the client's listing → SlotNoLongerAvailable
  (SlotTaken when the busy booking is this very slot).
- MirroringExternal: best-effort calendar event; failure downgrades the
  booking to pending instead of failing it.
- Persisting: create-if-absent with the slot id → lost race → SlotTaken
  (a mirrored event created for the losing attempt is deleted again).
- Released: the lock is released on every exit path.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from ..errors import (
    ExternalCalendarUnavailable,
    InvalidRequest,
    SlotLocked,
    SlotNoLongerAvailable,
    SlotTaken,
)
from ..utils.hashing import make_slot_id
from .google_calendar import CalendarGateway, build_event_body
from .slots.busy import BusySource
from .slots.config import BookingConfig, get_booking_config
from .slots.models import TimeWindow
from .store.base import (
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Booking,
    BookingStore,
    LockStore,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ClientDetails:
    name: str
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    sport: str | None = None
    lesson_type: str | None = None


@dataclass(frozen=True)
class BookingResult:
    booking_id: str
    status: str
    external_event_id: str | None = None
    mirror_error: str | None = None

    def to_json(self) -> dict:
        body = {
            "success": True,
            "bookingId": self.booking_id,
            "status": self.status,
        }
        if self.external_event_id:
            body["gcalEventId"] = self.external_event_id
        if self.mirror_error:
            body["mirrorError"] = self.mirror_error
        return body


class ReservationService:
    """
    Runs reservation attempts against shared stores.

    Safe to call concurrently from any number of threads or processes:
    all coordination goes through lock_store / booking_store primitives.
    """

    def __init__(
        self,
        booking_store: BookingStore,
        lock_store: LockStore,
        busy_source: BusySource,
        calendar: CalendarGateway | None = None,
        config: BookingConfig | None = None,
    ):
        self.booking_store = booking_store
        self.lock_store = lock_store
        self.busy_source = busy_source
        self.calendar = calendar
        self.config = config or get_booking_config()

    # ── Public ───────────────────────────────────────────────────────────

    def reserve(
        self,
        location_id: str,
        service_id: str,
        start: datetime,
        duration_minutes: int,
        client: ClientDetails,
        external_calendar_id: str | None = None,
        location_name: str | None = None,
    ) -> BookingResult:
        """
        Reserve [start, start + duration) at location_id.

        Raises:
            InvalidRequest, SlotLocked, SlotNoLongerAvailable, SlotTaken,
            StoreUnavailable
        """
        start = self._validate(location_id, service_id, start, duration_minutes, client)
        window = TimeWindow.of(start, duration_minutes)
        slot_id = make_slot_id(location_id, service_id, start)

        with self._slot_lock(slot_id):
            self._ensure_still_free(slot_id, location_id, window)

            status = STATUS_PENDING
            event_id = None
            mirror_error = None
            if external_calendar_id:
                event_id, mirror_error = self._mirror(
                    external_calendar_id, window, client, location_name or location_id
                )
                if event_id:
                    status = STATUS_CONFIRMED

            booking = Booking(
                id=slot_id,
                location_id=location_id,
                service_id=service_id,
                start=window.start,
                end=window.end,
                client_name=client.name.strip(),
                client_email=client.email,
                client_phone=client.phone,
                sport=client.sport,
                lesson_type=client.lesson_type,
                notes=client.notes,
                status=status,
                calendar_id=external_calendar_id if event_id else None,
                external_event_id=event_id,
            )

            if not self.booking_store.create_if_absent(booking):
                logger.warning(f"Slot {slot_id} taken by a concurrent booking")
                if event_id:
                    self._rollback_mirror(external_calendar_id, event_id)
                raise SlotTaken("Slot was booked by another request")

        logger.info(
            f"Booking {slot_id} {status}: location={location_id} service={service_id} "
            f"start={window.start.isoformat()} duration={duration_minutes}"
        )
        return BookingResult(
            booking_id=slot_id,
            status=status,
            external_event_id=event_id,
            mirror_error=mirror_error,
        )

    # ── Steps ────────────────────────────────────────────────────────────

    def _validate(
        self,
        location_id: str,
        service_id: str,
        start: datetime,
        duration_minutes: int,
        client: ClientDetails,
    ) -> datetime:
        if not location_id or not location_id.strip():
            raise InvalidRequest("locationId required")
        if not service_id or not service_id.strip():
            raise InvalidRequest("serviceId required")
        if not client.name or not client.name.strip():
            raise InvalidRequest("clientName required")
        if client.email and not _EMAIL_RE.match(client.email):
            raise InvalidRequest(f"Invalid clientEmail: {client.email!r}")
        if duration_minutes <= 0:
            raise InvalidRequest("durationMinutes must be > 0")
        if duration_minutes > self.config.max_duration_minutes:
            raise InvalidRequest(
                f"durationMinutes must be <= {self.config.max_duration_minutes}"
            )
        if start.tzinfo is None:
            # Naive times are wall-clock times of the operating timezone
            start = start.replace(tzinfo=self.config.tz)
        return start

    @contextmanager
    def _slot_lock(self, slot_id: str):
        token = self.lock_store.acquire(slot_id, self.config.lock_ttl_seconds)
        if token is None:
            logger.info(f"Slot {slot_id} locked by a concurrent attempt")
            raise SlotLocked("Another booking for this slot is in progress")
        try:
            yield token
        finally:
            self.lock_store.release(slot_id, token)

    def _ensure_still_free(self, slot_id: str, location_id: str, window: TimeWindow) -> None:
        busy = self.busy_source.fetch_busy(window, location_id)
        conflicts = [b for b in busy if b.overlaps(window)]
        if conflicts:
            existing = self.booking_store.get(slot_id)
            if existing is not None and existing.is_active:
                logger.info(f"Slot {slot_id} already booked")
                raise SlotTaken("Slot was booked by another request")
            sources = ", ".join(sorted({b.source or "unknown" for b in conflicts}))
            logger.info(f"Slot {slot_id} no longer free (busy in: {sources})")
            raise SlotNoLongerAvailable("Slot is no longer available")

    def _mirror(
        self,
        calendar_id: str,
        window: TimeWindow,
        client: ClientDetails,
        location_name: str,
    ) -> tuple[str | None, str | None]:
        """Create the mirrored event. Returns (event_id, error_code)."""
        if self.calendar is None or not self.calendar.is_configured:
            logger.info("Calendar mirror skipped: no calendar credentials")
            return None, None

        event = build_event_body(
            start=window.start,
            end=window.end,
            timezone=self.config.timezone,
            client_name=client.name.strip(),
            client_email=client.email,
            client_phone=client.phone,
            sport=client.sport,
            lesson_type=client.lesson_type,
            location_name=location_name,
            notes=client.notes,
        )
        try:
            return self.calendar.create_event(calendar_id, event), None
        except ExternalCalendarUnavailable as e:
            logger.warning(f"Calendar mirror failed on {calendar_id}, booking stays pending: {e}")
            return None, ExternalCalendarUnavailable.code
        except Exception:
            logger.exception(f"Calendar mirror failed on {calendar_id}, booking stays pending")
            return None, ExternalCalendarUnavailable.code

    def _rollback_mirror(self, calendar_id: str, event_id: str) -> None:
        try:
            self.calendar.delete_event(calendar_id, event_id)
        except ExternalCalendarUnavailable as e:
            logger.error(f"Orphan calendar event {event_id} on {calendar_id}: {e}")
        except Exception:
            logger.exception(f"Orphan calendar event {event_id} on {calendar_id}")


def resolve_mirror_calendar(
    rule_store,
    location_id: str,
    sport: str | None = None,
    explicit_calendar_id: str | None = None,
    default_calendar_id: str | None = None,
) -> str | None:
    """
    Calendar the booking is mirrored to: explicit request value, else the
    location's calendar for the sport, else the location calendar, else the
    configured default.
    """
    if explicit_calendar_id:
        return explicit_calendar_id
    return rule_store.get_calendar_id(location_id, sport) or default_calendar_id
