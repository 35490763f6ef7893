"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from lesson_booking.errors import ExternalCalendarUnavailable
from lesson_booking.services.google_calendar import FreeBusyResult
from lesson_booking.services.slots import (
    AvailabilityRule,
    BookingConfig,
    DayWindow,
    MemoryRuleStore,
)
from lesson_booking.services.store.memory import MemoryBookingStore, MemoryLockStore

ROME = ZoneInfo("Europe/Rome")

# Monday
MONDAY = date(2024, 6, 10)
# Far enough in the past that no notice cutoff interferes
EARLY_NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


def local(day: date, hhmm: str) -> datetime:
    h, m = hhmm.split(":")
    return datetime(day.year, day.month, day.day, int(h), int(m), tzinfo=ROME)


def make_rule(
    location_id: str = "Salò",
    interval: int = 60,
    days: dict[int, tuple[str, str]] | None = None,
    disabled: tuple[int, ...] = (),
) -> AvailabilityRule:
    """Rule open on the given weekdays (0 = Sunday); default Monday 09-18."""
    days = days if days is not None else {1: ("09:00", "18:00")}
    overrides = {
        wd: DayWindow(enabled=True, start_time=start, end_time=end)
        for wd, (start, end) in days.items()
    }
    for wd in disabled:
        overrides[wd] = DayWindow(enabled=False, start_time="09:00", end_time="18:00")
    return AvailabilityRule(location_id, interval, overrides)


class FakeCalendarGateway:
    """In-memory stand-in for GoogleCalendarGateway."""

    def __init__(
        self,
        busy: dict[str, list[tuple[datetime, datetime]]] | None = None,
        unreadable: dict[str, str] | None = None,
        configured: bool = True,
        fail_query: bool = False,
        fail_create: bool = False,
    ):
        self.busy = busy or {}
        self.unreadable = unreadable or {}
        self.configured = configured
        self.fail_query = fail_query
        self.fail_create = fail_create
        self.queries: list[list[str]] = []
        self.created: dict[str, tuple[str, dict]] = {}
        self.deleted: list[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def query_free_busy(self, calendar_ids, time_min, time_max):
        self.queries.append(list(calendar_ids))
        if self.fail_query:
            raise ExternalCalendarUnavailable("free/busy down")
        result = FreeBusyResult()
        for cid in calendar_ids:
            if cid in self.unreadable:
                result.errors[cid] = self.unreadable[cid]
                continue
            result.busy[cid] = [
                (s, e) for s, e in self.busy.get(cid, []) if s < time_max and time_min < e
            ]
        return result

    def create_event(self, calendar_id, event):
        if self.fail_create:
            raise ExternalCalendarUnavailable("insert timed out")
        event_id = f"evt{len(self.created) + 1}"
        self.created[event_id] = (calendar_id, event)
        return event_id

    def delete_event(self, calendar_id, event_id):
        self.deleted.append(event_id)
        self.created.pop(event_id, None)
        return True


@pytest.fixture
def config():
    return BookingConfig(min_advance_hours=12, lock_ttl_seconds=30)


@pytest.fixture
def rule():
    return make_rule()


@pytest.fixture
def rule_store(rule):
    return MemoryRuleStore(
        rules={rule.location_id: rule},
        calendars={rule.location_id: "salo@cal"},
    )


@pytest.fixture
def booking_store():
    return MemoryBookingStore()


@pytest.fixture
def lock_store():
    return MemoryLockStore()


@pytest.fixture
def gateway():
    return FakeCalendarGateway()


def window_of(day: date, start: str, end: str):
    from lesson_booking.services.slots import TimeWindow
    return TimeWindow(local(day, start), local(day, end))


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
