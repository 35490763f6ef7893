# backend/lesson_booking/routers/bookings.py

from fastapi import APIRouter, Depends

from ..dependencies import (
    busy_source_for,
    get_booking_store,
    get_calendar_gateway,
    get_calendar_ids,
    get_config,
    get_default_calendar_id,
    get_lock_store,
    get_rule_store,
)
from ..schemas.bookings import BookingCreate, BookingCreated
from ..services.reservation import ClientDetails, ReservationService, resolve_mirror_calendar
from ..services.slots import BookingConfig

router = APIRouter(tags=["bookings"])


@router.post(
    "/createBooking",
    response_model=BookingCreated,
    response_model_exclude_none=True,
)
def create_booking(
    data: BookingCreate,
    rule_store=Depends(get_rule_store),
    booking_store=Depends(get_booking_store),
    lock_store=Depends(get_lock_store),
    gateway=Depends(get_calendar_gateway),
    calendar_ids: list[str] = Depends(get_calendar_ids),
    default_calendar_id: str | None = Depends(get_default_calendar_id),
    config: BookingConfig = Depends(get_config),
):
    """
    Reserve one slot.

    409 on SlotTaken / SlotLocked / SlotNoLongerAvailable; a failed calendar
    mirror still returns success with status = pending.
    """
    mirror_calendar = resolve_mirror_calendar(
        rule_store,
        data.location_id,
        sport=data.sport,
        explicit_calendar_id=data.target_calendar_id,
        default_calendar_id=default_calendar_id,
    )
    # The calendar the event lands on must be free too
    check_ids = [*calendar_ids, mirror_calendar] if mirror_calendar else calendar_ids
    service = ReservationService(
        booking_store=booking_store,
        lock_store=lock_store,
        busy_source=busy_source_for(
            rule_store, booking_store, gateway, data.location_id, check_ids, data.sport
        ),
        calendar=gateway,
        config=config,
    )

    result = service.reserve(
        location_id=data.location_id,
        service_id=data.resolved_service_id,
        start=data.date_iso,
        duration_minutes=data.duration_minutes,
        client=ClientDetails(
            name=data.client_name,
            email=data.client_email,
            phone=data.client_phone,
            notes=data.message,
            sport=data.sport,
            lesson_type=data.lesson_type,
        ),
        external_calendar_id=mirror_calendar,
    )
    return result.to_json()
