"""
backend/lesson_booking/services/google_calendar.py

Google Calendar integration for the administrator's calendars.

Handles:
- Service-account credentials (raw or base64 JSON)
- Free/busy queries across several calendars
- Mirrored event creation / deletion for bookings

Every network call goes through an httplib2 transport with a timeout;
transport, auth and API failures surface as ExternalCalendarUnavailable.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..errors import ExternalCalendarUnavailable

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# freebusy.query accepts at most 50 calendars per request
FREEBUSY_MAX_ITEMS = 50

_TRANSPORT_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


@dataclass
class FreeBusyResult:
    """Busy periods per calendar plus calendars that could not be read."""
    busy: dict[str, list[tuple[datetime, datetime]]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


class CalendarGateway(Protocol):

    @property
    def is_configured(self) -> bool:
        ...

    def query_free_busy(
        self, calendar_ids: list[str], time_min: datetime, time_max: datetime
    ) -> FreeBusyResult:
        ...

    def create_event(self, calendar_id: str, event: dict) -> str:
        ...

    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        ...


def load_service_account_info(raw: str | None) -> dict | None:
    """Parse GOOGLE_SERVICE_ACCOUNT given as raw JSON or base64-encoded JSON."""
    if not raw or not raw.strip():
        return None
    trimmed = raw.strip()
    if not trimmed.startswith("{"):
        try:
            trimmed = base64.b64decode(trimmed, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("GOOGLE_SERVICE_ACCOUNT is neither JSON nor base64 JSON")
            return None
    try:
        info = json.loads(trimmed)
    except json.JSONDecodeError:
        logger.warning("Could not parse GOOGLE_SERVICE_ACCOUNT JSON")
        return None
    return info if isinstance(info, dict) else None


def build_event_body(
    *,
    start: datetime,
    end: datetime,
    timezone: str,
    client_name: str,
    client_email: str | None = None,
    client_phone: str | None = None,
    sport: str | None = None,
    lesson_type: str | None = None,
    location_name: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Build the Google Calendar event resource mirroring a booking.

    Returns:
        Event body for events().insert()
    """
    duration = int((end - start).total_seconds() // 60)
    description_parts = [
        "<b>Dettagli Cliente:</b>",
        f"- Nome: {client_name}",
        f"- Email: {client_email or '-'}",
        f"- Telefono: {client_phone or '-'}",
        "<br>",
        "<b>Dettagli Lezione:</b>",
        f"- Sport: {sport or '-'}",
        f"- Tipo: {lesson_type or '-'}",
        f"- Durata: {duration} min",
        "<br>",
        "<b>Note:</b>",
        f"<pre>{notes or 'Nessuna nota.'}</pre>",
    ]

    summary = f"Lezione di {sport} - {client_name}" if sport else f"Prenotazione - {client_name}"

    event = {
        "summary": summary,
        "description": "<br>".join(description_parts),
        "start": {
            "dateTime": start.isoformat(),
            "timeZone": timezone,
        },
        "end": {
            "dateTime": end.isoformat(),
            "timeZone": timezone,
        },
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 120},
            ],
        },
    }
    if location_name:
        event["location"] = location_name
    if client_email:
        event["attendees"] = [{"email": client_email}]
    return event


def _parse_google_time(value: str) -> datetime:
    # "2024-06-10T10:00:00Z" / "...+02:00"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GoogleCalendarGateway:
    """Calendar API client acting as the administrator's service account."""

    def __init__(
        self,
        service_account_info: dict | None,
        timeout: float = 10.0,
    ):
        self.service_account_info = service_account_info
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.service_account_info)

    def _get_calendar_service(self):
        """Build Google Calendar API service client."""
        if not self.is_configured:
            raise ExternalCalendarUnavailable("Google Calendar credentials not configured")
        try:
            credentials = service_account.Credentials.from_service_account_info(
                self.service_account_info, scopes=SCOPES
            )
        except (ValueError, KeyError) as e:
            raise ExternalCalendarUnavailable(f"Invalid service account: {e}") from e
        http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout))
        return build("calendar", "v3", http=http, cache_discovery=False)

    def query_free_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
    ) -> FreeBusyResult:
        """
        Query busy periods of several calendars.

        Calendars reported with errors by the API land in result.errors, as
        do the calendars of a failed request when the ids span several
        requests.

        Raises:
            ExternalCalendarUnavailable: the single request failed
        """
        result = FreeBusyResult()
        if not calendar_ids:
            return result

        service = self._get_calendar_service()

        for i in range(0, len(calendar_ids), FREEBUSY_MAX_ITEMS):
            chunk = calendar_ids[i:i + FREEBUSY_MAX_ITEMS]
            body = {
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "items": [{"id": cid} for cid in chunk],
            }
            try:
                response = service.freebusy().query(body=body).execute()
            except _TRANSPORT_ERRORS as e:
                if len(calendar_ids) <= FREEBUSY_MAX_ITEMS:
                    raise ExternalCalendarUnavailable(f"Free/busy query failed: {e}") from e
                # One failed chunk must not discard the others
                logger.warning(f"Free/busy query failed for {len(chunk)} calendars: {e}")
                for cid in chunk:
                    result.errors[cid] = "queryFailed"
                continue

            for cid, data in (response.get("calendars") or {}).items():
                if data.get("errors"):
                    reasons = ", ".join(err.get("reason", "unknown") for err in data["errors"])
                    result.errors[cid] = reasons
                    continue
                periods = []
                for period in data.get("busy") or []:
                    if not period.get("start") or not period.get("end"):
                        continue
                    periods.append(
                        (_parse_google_time(period["start"]), _parse_google_time(period["end"]))
                    )
                result.busy[cid] = periods

        return result

    def create_event(self, calendar_id: str, event: dict) -> str:
        """
        Create a calendar event.

        Returns:
            Event id

        Raises:
            ExternalCalendarUnavailable: If API call fails
        """
        service = self._get_calendar_service()
        try:
            created_event = service.events().insert(
                calendarId=calendar_id,
                body=event,
                sendUpdates="all",
            ).execute()
        except _TRANSPORT_ERRORS as e:
            logger.error(f"Failed to create calendar event: {e}")
            raise ExternalCalendarUnavailable(f"Event creation failed: {e}") from e

        event_id = created_event.get("id")
        if not event_id:
            raise ExternalCalendarUnavailable("Event creation returned no id")
        logger.info(f"Created Google Calendar event: {event_id}")
        return event_id

    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """
        Delete a calendar event.

        Returns:
            True if the event is gone (deleted now or already missing)

        Raises:
            ExternalCalendarUnavailable: If API call fails
        """
        service = self._get_calendar_service()
        try:
            service.events().delete(
                calendarId=calendar_id,
                eventId=event_id,
            ).execute()
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.warning(f"Calendar event not found: {event_id}")
                return True
            logger.error(f"Failed to delete calendar event: {e}")
            raise ExternalCalendarUnavailable(f"Event deletion failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise ExternalCalendarUnavailable(f"Event deletion failed: {e}") from e

        logger.info(f"Deleted Google Calendar event: {event_id}")
        return True
