# backend/lesson_booking/services/slots/__init__.py
"""
Slots calculation module.

Generator: candidate windows from availability rules
Busy sources: external calendars + stored bookings
Conflict filter: busy overlap + minimum notice
"""

from .config import BookingConfig, get_booking_config
from .models import BusyInterval, CandidateSlot, TimeWindow
from .rules import AvailabilityRule, DayWindow, MemoryRuleStore, SqlRuleStore
from .calculator import calculate_day_slots, calculate_window_slots
from .busy import CalendarBusySource, CompositeBusySource, StoreBusySource
from .availability import SlotListing, approximate_slots, filter_free, list_free_slots

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "BusyInterval",
    "CandidateSlot",
    "TimeWindow",
    "AvailabilityRule",
    "DayWindow",
    "MemoryRuleStore",
    "SqlRuleStore",
    "calculate_day_slots",
    "calculate_window_slots",
    "CalendarBusySource",
    "CompositeBusySource",
    "StoreBusySource",
    "SlotListing",
    "approximate_slots",
    "filter_free",
    "list_free_slots",
]
