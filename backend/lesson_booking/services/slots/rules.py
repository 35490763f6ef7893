# backend/lesson_booking/services/slots/rules.py
"""
Availability rules: per-location weekly opening windows and slot granularity.

Rules are owned by the administrator's settings (external to the engine);
the engine only reads them through an AvailabilityRuleStore.

Stored schedule format (weekday keys, 0 = Sunday ... 6 = Saturday):
    {"1": {"enabled": true, "startTime": "09:00", "endTime": "18:00"}, ...}
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import StoreUnavailable
from .config import get_booking_config, time_str_to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayWindow:
    enabled: bool
    start_time: str  # "HH:MM"
    end_time: str    # "HH:MM"

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end_time)


@dataclass(frozen=True)
class AvailabilityRule:
    location_id: str
    slot_interval_minutes: int
    day_overrides: dict[int, DayWindow] = field(default_factory=dict)

    def __post_init__(self):
        if self.slot_interval_minutes <= 0:
            raise ValueError(
                f"slot_interval_minutes must be > 0, got {self.slot_interval_minutes}"
            )

    def window_for(self, target_date: date) -> DayWindow | None:
        """Opening window on target_date, or None if the day is closed."""
        day = self.day_overrides.get(weekday_index(target_date))
        if day is None or not day.enabled:
            return None
        return day


def weekday_index(target_date: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (target_date.weekday() + 1) % 7


def parse_day_overrides(location_id: str, schedule: dict) -> dict[int, DayWindow]:
    """
    Parse the stored schedule dict into DayWindows.

    Enabled days with an unreadable or empty window (start >= end) are kept
    as disabled so a bad admin entry closes one day instead of failing the
    whole location.
    """
    result: dict[int, DayWindow] = {}
    for key, raw in (schedule or {}).items():
        try:
            weekday = int(key)
        except (TypeError, ValueError):
            logger.warning(f"Location {location_id}: ignoring weekday key {key!r}")
            continue
        if not 0 <= weekday <= 6 or not isinstance(raw, dict):
            logger.warning(f"Location {location_id}: ignoring weekday entry {key!r}")
            continue

        enabled = bool(raw.get("enabled", False))
        start = raw.get("startTime") or "09:00"
        end = raw.get("endTime") or "18:00"

        if enabled:
            try:
                valid = time_str_to_minutes(start) < time_str_to_minutes(end)
            except (ValueError, AttributeError):
                valid = False
            if not valid:
                logger.warning(
                    f"Location {location_id}: weekday {weekday} window "
                    f"{start}-{end} is invalid, day treated as closed"
                )
                enabled = False

        result[weekday] = DayWindow(enabled=enabled, start_time=start, end_time=end)
    return result


class AvailabilityRuleStore(Protocol):

    def get_rule(self, location_id: str) -> AvailabilityRule | None:
        ...

    def get_calendar_id(self, location_id: str, sport: str | None = None) -> str | None:
        """Calendar that mirrors bookings for this location (and sport)."""
        ...


# ── In-memory ────────────────────────────────────────────────────────────


class MemoryRuleStore:
    """Rules held in a dict; used by tests and single-process setups."""

    def __init__(
        self,
        rules: dict[str, AvailabilityRule] | None = None,
        calendars: dict[str, str] | None = None,
        sport_calendars: dict[str, dict[str, str]] | None = None,
    ):
        self.rules = dict(rules or {})
        self.calendars = dict(calendars or {})
        self.sport_calendars = dict(sport_calendars or {})

    def get_rule(self, location_id: str) -> AvailabilityRule | None:
        return self.rules.get(location_id)

    def get_calendar_id(self, location_id: str, sport: str | None = None) -> str | None:
        if sport:
            by_sport = self.sport_calendars.get(location_id, {})
            if by_sport.get(sport):
                return by_sport[sport]
        return self.calendars.get(location_id)


# ── SQL ──────────────────────────────────────────────────────────────────


class SqlRuleStore:
    """Rules read from the `locations` table."""

    def __init__(self, db: Session):
        self.db = db

    def _get_location(self, location_id: str):
        from ...models.tables import Locations

        try:
            return self.db.query(Locations).filter(
                Locations.id == location_id,
                Locations.is_active == 1,
            ).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Locations query failed: {e}") from e

    def get_rule(self, location_id: str) -> AvailabilityRule | None:
        location = self._get_location(location_id)
        if not location:
            return None

        try:
            schedule = json.loads(location.work_schedule) if location.work_schedule else {}
        except json.JSONDecodeError:
            logger.warning(f"Location {location_id}: work_schedule is not valid JSON")
            schedule = {}

        try:
            return AvailabilityRule(
                location_id=location.id,
                slot_interval_minutes=(
                    location.slot_interval_minutes
                    or get_booking_config().default_slot_step_minutes
                ),
                day_overrides=parse_day_overrides(location.id, schedule),
            )
        except ValueError as e:
            logger.warning(f"Location {location_id}: unusable rule ({e})")
            return None

    def get_calendar_id(self, location_id: str, sport: str | None = None) -> str | None:
        location = self._get_location(location_id)
        if not location:
            return None

        if sport and location.sport_calendars:
            try:
                by_sport = json.loads(location.sport_calendars)
            except json.JSONDecodeError:
                by_sport = {}
            if isinstance(by_sport, dict) and by_sport.get(sport):
                return by_sport[sport]

        return location.calendar_id or None
