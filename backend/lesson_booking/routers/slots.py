# backend/lesson_booking/routers/slots.py
"""
Slots API endpoints.

POST /getBusySlotsOnBehalfOfAdmin - free slots (rule → busy sources → filter)
POST /getApproximateSlots - rule-only slots, flagged approximate
POST /checkSlotFree - busy periods overlapping one window
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends

from ..dependencies import (
    busy_source_for,
    get_booking_store,
    get_calendar_gateway,
    get_calendar_ids,
    get_config,
    get_now,
    get_rule_store,
    relevant_calendars,
)
from ..errors import InvalidRequest
from ..schemas.slots import (
    ApproximateSlotsResponse,
    BusySlotsRequest,
    CheckSlotFreeRequest,
    CheckSlotFreeResponse,
    SlotsResponse,
)
from ..services.slots import (
    BookingConfig,
    CalendarBusySource,
    CompositeBusySource,
    StoreBusySource,
    TimeWindow,
    approximate_slots,
    list_free_slots,
)
from ..services.slots.busy import group_by_source

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots"])


def _aware(dt: datetime, config: BookingConfig) -> datetime:
    # Naive timestamps are wall-clock times of the operating timezone
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=config.tz)


def _listing_window(data: BusySlotsRequest, config: BookingConfig) -> TimeWindow:
    time_min = _aware(data.data.time_min, config)
    time_max = _aware(data.data.time_max, config)

    if time_max <= time_min:
        raise InvalidRequest("data.timeMax must be after data.timeMin")
    if time_max - time_min > timedelta(days=config.horizon_days):
        raise InvalidRequest(f"Window cannot exceed {config.horizon_days} days")

    return TimeWindow(time_min, time_max)


@router.post(
    "/getBusySlotsOnBehalfOfAdmin",
    response_model=SlotsResponse,
)
def get_busy_slots_on_behalf_of_admin(
    data: BusySlotsRequest,
    rule_store=Depends(get_rule_store),
    booking_store=Depends(get_booking_store),
    gateway=Depends(get_calendar_gateway),
    calendar_ids: list[str] = Depends(get_calendar_ids),
    config: BookingConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Free candidate windows for a location within [timeMin, timeMax)."""
    window = _listing_window(data, config)

    rule = rule_store.get_rule(data.location_id)
    if rule is None:
        logger.info(f"No availability rule for location {data.location_id}")

    busy_source = busy_source_for(
        rule_store, booking_store, gateway, data.location_id, calendar_ids
    )
    listing = list_free_slots(
        rule,
        window,
        busy_source,
        duration_minutes=data.slot_duration_minutes,
        step_minutes=data.slot_step_minutes,
        config=config,
        now=now,
    )
    return listing.to_json()


@router.post(
    "/getApproximateSlots",
    response_model=ApproximateSlotsResponse,
)
def get_approximate_slots(
    data: BusySlotsRequest,
    rule_store=Depends(get_rule_store),
    config: BookingConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Rule-only windows; calendars and bookings are not consulted."""
    window = _listing_window(data, config)
    listing = approximate_slots(
        rule_store.get_rule(data.location_id),
        window,
        duration_minutes=data.slot_duration_minutes,
        step_minutes=data.slot_step_minutes,
        config=config,
        now=now,
    )
    return listing.to_json()


@router.post(
    "/checkSlotFree",
    response_model=CheckSlotFreeResponse,
)
def check_slot_free(
    data: CheckSlotFreeRequest,
    rule_store=Depends(get_rule_store),
    booking_store=Depends(get_booking_store),
    gateway=Depends(get_calendar_gateway),
    calendar_ids: list[str] = Depends(get_calendar_ids),
    config: BookingConfig = Depends(get_config),
):
    """Busy periods of all relevant calendars (and bookings) overlapping one window."""
    start = _aware(data.start_iso, config)
    end = _aware(data.end_iso, config)
    if end <= start:
        raise InvalidRequest("endISO must be after startISO")
    window = TimeWindow(start, end)

    calendars = relevant_calendars(rule_store, data.location_id, calendar_ids)
    sources = [CalendarBusySource(gateway, calendars)]
    if data.location_id:
        sources.append(StoreBusySource(booking_store))

    busy = [
        b for b in CompositeBusySource(*sources).fetch_busy(window, data.location_id or "")
        if b.overlaps(window)
    ]

    busy_map = {cid: [] for cid in calendars}
    busy_map.update(group_by_source(busy))

    return {"ok": True, "anyBusy": bool(busy), "busyMap": busy_map}
