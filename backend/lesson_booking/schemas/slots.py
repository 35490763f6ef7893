# backend/lesson_booking/schemas/slots.py
"""
Pydantic schemas for slots API (camelCase on the wire).
"""

from datetime import datetime
from pydantic import BaseModel, Field


class TimeRange(BaseModel):
    """Listing window, ISO-8601."""
    time_min: datetime = Field(alias="timeMin")
    time_max: datetime = Field(alias="timeMax")

    model_config = {"populate_by_name": True}


class BusySlotsRequest(BaseModel):
    """Request for free slots of a location over a window."""
    location_id: str = Field(alias="locationId", min_length=1)
    data: TimeRange
    slot_duration_minutes: int | None = Field(None, alias="slotDurationMinutes", gt=0)
    slot_step_minutes: int | None = Field(None, alias="slotStepMinutes", gt=0)

    model_config = {"populate_by_name": True}


class SlotWindow(BaseModel):
    startISO: str
    endISO: str


class SlotsResponse(BaseModel):
    """Free candidate windows after filtering."""
    slots: list[SlotWindow]


class ApproximateSlotsResponse(SlotsResponse):
    """Rule-only windows: busy calendars and bookings were NOT consulted."""
    approximate: bool = True


class CheckSlotFreeRequest(BaseModel):
    start_iso: datetime = Field(alias="startISO")
    end_iso: datetime = Field(alias="endISO")
    location_id: str | None = Field(None, alias="locationId")

    model_config = {"populate_by_name": True}


class BusyPeriod(BaseModel):
    start: str
    end: str


class CheckSlotFreeResponse(BaseModel):
    ok: bool = True
    anyBusy: bool
    busyMap: dict[str, list[BusyPeriod]] = Field(
        description="Busy periods by calendar id; stored bookings under 'bookings'"
    )
