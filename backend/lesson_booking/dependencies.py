# backend/lesson_booking/dependencies.py
"""
FastAPI dependency providers.

Each collaborator of the engine is provided here so tests (or another
deployment) can swap implementations via app.dependency_overrides.
"""

from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .redis_client import redis_client
from .services.google_calendar import GoogleCalendarGateway, load_service_account_info
from .services.slots import (
    BookingConfig,
    CalendarBusySource,
    CompositeBusySource,
    SqlRuleStore,
    StoreBusySource,
    get_booking_config,
)
from .services.store.redis_locks import RedisLockStore
from .services.store.sql_store import SqlBookingStore


def get_config() -> BookingConfig:
    return get_booking_config()


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_rule_store(db: Session = Depends(get_db)):
    return SqlRuleStore(db)


def get_booking_store(db: Session = Depends(get_db)):
    return SqlBookingStore(db)


def get_lock_store():
    return RedisLockStore(redis_client)


@lru_cache
def get_calendar_gateway():
    return GoogleCalendarGateway(
        load_service_account_info(settings.google_service_account),
        timeout=settings.google_request_timeout,
    )


def get_calendar_ids() -> list[str]:
    return settings.calendar_ids


def get_default_calendar_id() -> str | None:
    return settings.default_calendar_id


def relevant_calendars(
    rule_store,
    location_id: str | None,
    calendar_ids: list[str],
    sport: str | None = None,
) -> list[str]:
    """Selected calendars plus the calendar mapped to the location (and sport)."""
    ids = list(calendar_ids)
    if location_id:
        mapped = rule_store.get_calendar_id(location_id, sport)
        if mapped:
            ids.append(mapped)
    return list(dict.fromkeys(ids))


def busy_source_for(
    rule_store,
    booking_store,
    gateway,
    location_id: str,
    calendar_ids: list[str],
    sport: str | None = None,
) -> CompositeBusySource:
    """External calendars + stored bookings relevant to one location."""
    return CompositeBusySource(
        CalendarBusySource(gateway, relevant_calendars(rule_store, location_id, calendar_ids, sport)),
        StoreBusySource(booking_store),
    )
