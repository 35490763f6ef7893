# backend/lesson_booking/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    location_id: str = Field(alias="locationId", min_length=1)
    date_iso: datetime = Field(alias="dateISO")
    duration_minutes: int = Field(alias="durationMinutes")
    client_name: str = Field(alias="clientName", min_length=1)

    client_email: Optional[str] = Field(None, alias="clientEmail")
    client_phone: Optional[str] = Field(None, alias="clientPhone")
    service_id: Optional[str] = Field(None, alias="serviceId")
    sport: Optional[str] = None
    lesson_type: Optional[str] = Field(None, alias="lessonType")
    message: Optional[str] = None
    target_calendar_id: Optional[str] = Field(None, alias="targetCalendarId")

    model_config = {"populate_by_name": True}

    @property
    def resolved_service_id(self) -> str:
        """serviceId, else sport, else the generic lesson service."""
        return self.service_id or self.sport or "lesson"


class BookingCreated(BaseModel):
    success: bool = True
    bookingId: str
    status: str = Field(description="confirmed | pending")
    gcalEventId: Optional[str] = None
    mirrorError: Optional[str] = Field(
        None, description="Set when the calendar mirror failed (booking kept as pending)"
    )
