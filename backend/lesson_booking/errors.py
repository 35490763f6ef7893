"""
Error taxonomy of the booking engine and its HTTP mapping.

Every error carries the wire code returned to clients and the HTTP status it
maps to. ExternalCalendarUnavailable never reaches the HTTP layer: the
reservation transaction catches it and degrades the booking to pending.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# Routes answering with the {success, error, message} envelope
BOOKING_PATHS = ("/createBooking",)


class BookingEngineError(Exception):
    code = "InternalError"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidRequest(BookingEngineError):
    code = "InvalidRequest"
    status_code = 400


class SlotConflict(BookingEngineError):
    """Base for failures the caller recovers from by picking another slot."""
    status_code = 409


class SlotLocked(SlotConflict):
    code = "SlotLocked"


class SlotNoLongerAvailable(SlotConflict):
    code = "SlotNoLongerAvailable"


class SlotTaken(SlotConflict):
    code = "SlotTaken"


class ExternalCalendarUnavailable(BookingEngineError):
    code = "ExternalCalendarUnavailable"
    status_code = 502


class StoreUnavailable(BookingEngineError):
    code = "StoreUnavailable"
    status_code = 503


def _is_booking_route(request: Request) -> bool:
    return request.url.path.endswith(BOOKING_PATHS)


def _error_body(request: Request, code: str, message: str) -> dict:
    body = {"error": code, "message": message}
    if _is_booking_route(request):
        body = {"success": False, **body}
    return body


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc or 'body'}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or "Malformed request"


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(BookingEngineError)
    async def booking_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.code, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=InvalidRequest.status_code,
            content=_error_body(request, InvalidRequest.code, _format_validation_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "InternalError", "Internal server error"),
        )
