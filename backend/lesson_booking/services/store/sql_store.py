# backend/lesson_booking/services/store/sql_store.py
"""
Bookings persisted in the relational `bookings` table.

Primary key = deterministic slot id, so create-if-absent is a plain INSERT
whose uniqueness violation means "slot already taken". A cancelled row with
the same id is revived with a conditional UPDATE (status = 'cancelled'),
which is atomic at the row level.
"""

import logging
from datetime import datetime

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import StoreUnavailable
from ...models.tables import Bookings
from ...utils.hashing import utc_iso
from ..slots.models import TimeWindow
from .base import STATUS_CANCELLED, Booking

logger = logging.getLogger(__name__)


def _row_values(booking: Booking) -> dict:
    return {
        "location_id": booking.location_id,
        "service_id": booking.service_id,
        "date_start": utc_iso(booking.start),
        "date_end": utc_iso(booking.end),
        "duration_minutes": booking.duration_minutes,
        "client_name": booking.client_name,
        "client_email": booking.client_email,
        "client_phone": booking.client_phone,
        "sport": booking.sport,
        "lesson_type": booking.lesson_type,
        "notes": booking.notes,
        "status": booking.status,
        "calendar_id": booking.calendar_id,
        "external_event_id": booking.external_event_id,
        "created_at": utc_iso(booking.created_at),
    }


def _to_booking(row: Bookings) -> Booking:
    return Booking(
        id=row.id,
        location_id=row.location_id,
        service_id=row.service_id,
        start=datetime.fromisoformat(row.date_start),
        end=datetime.fromisoformat(row.date_end),
        client_name=row.client_name,
        client_email=row.client_email,
        client_phone=row.client_phone,
        sport=row.sport,
        lesson_type=row.lesson_type,
        notes=row.notes,
        status=row.status,
        calendar_id=row.calendar_id,
        external_event_id=row.external_event_id,
        created_at=datetime.fromisoformat(row.created_at),
    )


class SqlBookingStore:

    def __init__(self, db: Session):
        self.db = db

    def create_if_absent(self, booking: Booking) -> bool:
        values = _row_values(booking)

        try:
            self.db.execute(insert(Bookings).values(id=booking.id, **values))
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Booking insert failed: {e}") from e

        # Same id exists: only a cancelled booking may be replaced
        try:
            result = self.db.execute(
                update(Bookings)
                .where(Bookings.id == booking.id, Bookings.status == STATUS_CANCELLED)
                .values(**values)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Booking update failed: {e}") from e

        if result.rowcount == 1:
            logger.info(f"Booking {booking.id} replaced a cancelled booking")
            return True
        return False

    def get(self, booking_id: str) -> Booking | None:
        try:
            row = self.db.get(Bookings, booking_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Booking lookup failed: {e}") from e
        return _to_booking(row) if row else None

    def list_overlapping(self, location_id: str, window: TimeWindow) -> list[Booking]:
        try:
            rows = (
                self.db.query(Bookings)
                .filter(
                    Bookings.location_id == location_id,
                    Bookings.date_start < utc_iso(window.end),
                    Bookings.date_end > utc_iso(window.start),
                    Bookings.status != STATUS_CANCELLED,
                )
                .order_by(Bookings.date_start)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Bookings range query failed: {e}") from e
        return [_to_booking(row) for row in rows]
