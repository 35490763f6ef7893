# backend/lesson_booking/services/slots/calculator.py
"""
Slot generator: candidate windows from a location's availability rule.

Produces CandidateSlot(start, end) with end = start + duration, stepping
start from the day window's opening by the slot interval, and keeping a
candidate only while it ends within the window.

Contains:
✓ weekly opening windows (rule day_overrides)
✓ slot granularity (rule slot_interval_minutes, or an explicit step)

Does NOT contain:
✗ Busy intervals (conflict filter)
✗ Minimum notice (conflict filter)
"""

from datetime import date, datetime, time, timedelta

from .config import BookingConfig, get_booking_config
from .models import CandidateSlot, TimeWindow
from .rules import AvailabilityRule


def calculate_day_slots(
    rule: AvailabilityRule | None,
    target_date: date,
    duration_minutes: int | None = None,
    step_minutes: int | None = None,
    config: BookingConfig | None = None,
) -> list[CandidateSlot]:
    """
    Generate candidates for one location on one date.

    Returns:
        Ascending list of CandidateSlot. Empty list = no rule or closed day.
    """
    if rule is None:
        return []

    day = rule.window_for(target_date)
    if day is None:
        return []

    config = config or get_booking_config()
    tz = config.tz
    step = step_minutes or rule.slot_interval_minutes
    duration = duration_minutes or rule.slot_interval_minutes
    if step <= 0 or duration <= 0:
        raise ValueError(f"step and duration must be > 0, got {step}/{duration}")

    start_min = day.start_minutes
    end_min = day.end_minutes

    midnight = datetime.combine(target_date, time.min, tzinfo=tz)
    slots: list[CandidateSlot] = []

    t = start_min
    while t + duration <= end_min:
        slot_start = midnight + timedelta(minutes=t)
        slots.append(CandidateSlot.of(slot_start, duration))
        t += step

    return slots


def calculate_window_slots(
    rule: AvailabilityRule | None,
    window: TimeWindow,
    duration_minutes: int | None = None,
    step_minutes: int | None = None,
    config: BookingConfig | None = None,
) -> list[CandidateSlot]:
    """
    Generate candidates for every local date touched by `window`, keeping
    only candidates that lie fully inside it.
    """
    if rule is None:
        return []

    config = config or get_booking_config()
    tz = config.tz

    first_day = window.start.astimezone(tz).date()
    last_day = window.end.astimezone(tz).date()

    slots: list[CandidateSlot] = []
    current = first_day
    while current <= last_day:
        for slot in calculate_day_slots(rule, current, duration_minutes, step_minutes, config):
            if window.contains(slot):
                slots.append(slot)
        current += timedelta(days=1)

    return slots
