# backend/lesson_booking/services/slots/busy.py
"""
Busy interval sources.

Two variants, composable by concatenation:
- CalendarBusySource: free/busy of the administrator's external calendars.
  Fail-open: an unreadable calendar (or a failed query) contributes no busy
  time and is logged, so one misconfigured calendar never blocks bookings.
- StoreBusySource: non-cancelled stored bookings at the location.
  Store failures propagate (StoreUnavailable).

Returned intervals may overlap or repeat; consumers must not assume order.
"""

import logging
from typing import Iterable, Protocol

from ...errors import ExternalCalendarUnavailable
from ..google_calendar import CalendarGateway
from ..store.base import BookingStore
from .models import BusyInterval, TimeWindow

logger = logging.getLogger(__name__)

BOOKINGS_SOURCE = "bookings"


class BusySource(Protocol):

    def fetch_busy(self, window: TimeWindow, location_id: str) -> list[BusyInterval]:
        ...


class CalendarBusySource:

    def __init__(self, gateway: CalendarGateway, calendar_ids: Iterable[str]):
        self.gateway = gateway
        # Keep order, drop duplicates and blanks
        self.calendar_ids = list(dict.fromkeys(c for c in calendar_ids if c))

    def fetch_busy(self, window: TimeWindow, location_id: str) -> list[BusyInterval]:
        if not self.calendar_ids:
            return []
        if not self.gateway.is_configured:
            logger.debug("Calendar credentials not configured, no external busy time")
            return []

        try:
            result = self.gateway.query_free_busy(self.calendar_ids, window.start, window.end)
        except ExternalCalendarUnavailable as e:
            logger.warning(
                f"Free/busy unavailable for {len(self.calendar_ids)} calendars "
                f"(location {location_id}), treating as free: {e}"
            )
            return []

        for cid, reason in result.errors.items():
            logger.warning(f"Calendar {cid} unreadable ({reason}), treating as free")

        intervals: list[BusyInterval] = []
        for cid, periods in result.busy.items():
            for start, end in periods:
                try:
                    intervals.append(BusyInterval(start, end, source=cid))
                except ValueError as e:
                    logger.warning(f"Calendar {cid}: skipping busy period {start}-{end}: {e}")
        return intervals


class StoreBusySource:

    def __init__(self, store: BookingStore):
        self.store = store

    def fetch_busy(self, window: TimeWindow, location_id: str) -> list[BusyInterval]:
        return [
            BusyInterval(b.start, b.end, source=BOOKINGS_SOURCE)
            for b in self.store.list_overlapping(location_id, window)
        ]


class CompositeBusySource:
    """Concatenates the intervals of several sources."""

    def __init__(self, *sources: BusySource):
        self.sources = sources

    def fetch_busy(self, window: TimeWindow, location_id: str) -> list[BusyInterval]:
        intervals: list[BusyInterval] = []
        for source in self.sources:
            intervals.extend(source.fetch_busy(window, location_id))
        return intervals


def group_by_source(intervals: Iterable[BusyInterval]) -> dict[str, list[dict]]:
    """{source: [{"start", "end"}]} view used by the slot freshness check."""
    grouped: dict[str, list[dict]] = {}
    for interval in intervals:
        grouped.setdefault(interval.source, []).append({
            "start": interval.start.isoformat(),
            "end": interval.end.isoformat(),
        })
    return grouped
