"""
Load location availability rules into the `locations` table.

Usage:
    python -m lesson_booking.seed locations.json

locations.json:
    [
      {
        "id": "salo",
        "name": "Salò",
        "slotInterval": 60,
        "dayOverrides": {"1": {"enabled": true, "startTime": "09:00", "endTime": "18:00"}},
        "calendarId": "courts@group.calendar.google.com",
        "calendars": {"tennis": "tennis@group.calendar.google.com"}
      }
    ]
"""

import json
import logging
import sys
from pathlib import Path

from sqlalchemy.orm import Session

from .models.tables import Locations
from .services.slots.rules import parse_day_overrides

logger = logging.getLogger(__name__)


def upsert_location(db: Session, data: dict) -> Locations:
    """Insert or replace one location's rule. Commits."""
    location_id = str(data["id"]).strip()
    if not location_id:
        raise ValueError("location id is empty")

    schedule = data.get("dayOverrides") or {}
    # Validate now; parse_day_overrides logs unusable days
    parse_day_overrides(location_id, schedule)

    interval = int(data.get("slotInterval") or 60)
    if interval <= 0:
        raise ValueError(f"{location_id}: slotInterval must be > 0")

    location = db.get(Locations, location_id) or Locations(id=location_id)
    location.name = data.get("name") or location_id
    location.is_active = 1 if data.get("active", True) else 0
    location.slot_interval_minutes = interval
    location.work_schedule = json.dumps(schedule, ensure_ascii=False)
    location.calendar_id = data.get("calendarId")
    location.sport_calendars = json.dumps(data.get("calendars") or {}, ensure_ascii=False)

    db.add(location)
    db.commit()
    logger.info(f"Location {location_id} saved")
    return location


def main(argv: list[str] | None = None) -> int:
    from .database import SessionLocal, init_db

    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: python -m lesson_booking.seed <locations.json>")
        return 2

    logging.basicConfig(level=logging.INFO)
    entries = json.loads(Path(argv[0]).read_text(encoding="utf-8"))

    init_db()
    db = SessionLocal()
    try:
        for entry in entries:
            upsert_location(db, entry)
    finally:
        db.close()

    print(f"Loaded {len(entries)} locations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
