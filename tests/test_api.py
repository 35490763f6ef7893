"""HTTP surface: listing, booking, slot freshness check, error envelopes."""

import json
import logging

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lesson_booking import main
from lesson_booking.dependencies import (
    get_booking_store,
    get_calendar_gateway,
    get_calendar_ids,
    get_config,
    get_default_calendar_id,
    get_lock_store,
    get_now,
    get_rule_store,
)
from lesson_booking.errors import StoreUnavailable
from lesson_booking.utils.hashing import make_slot_id

from conftest import EARLY_NOW, MONDAY, FakeCalendarGateway, local

LISTING = {
    "locationId": "Salò",
    "data": {
        "timeMin": "2024-06-10T00:00:00+02:00",
        "timeMax": "2024-06-11T00:00:00+02:00",
    },
    "slotDurationMinutes": 60,
}

BOOKING = {
    "locationId": "Salò",
    "dateISO": "2024-06-10T10:00:00+02:00",
    "durationMinutes": 60,
    "clientName": "Mario Rossi",
    "clientEmail": "mario@example.com",
    "sport": "tennis",
    "lessonType": "private",
}


@pytest.fixture
def app_state(rule_store, booking_store, lock_store, gateway, config):
    return {
        "rule_store": rule_store,
        "booking_store": booking_store,
        "lock_store": lock_store,
        "gateway": gateway,
        "config": config,
    }


@pytest.fixture
def client(app_state):
    app = main.app
    app.dependency_overrides[get_rule_store] = lambda: app_state["rule_store"]
    app.dependency_overrides[get_booking_store] = lambda: app_state["booking_store"]
    app.dependency_overrides[get_lock_store] = lambda: app_state["lock_store"]
    app.dependency_overrides[get_calendar_gateway] = lambda: app_state["gateway"]
    app.dependency_overrides[get_calendar_ids] = lambda: ["primary"]
    app.dependency_overrides[get_default_calendar_id] = lambda: None
    app.dependency_overrides[get_config] = lambda: app_state["config"]
    app.dependency_overrides[get_now] = lambda: EARLY_NOW
    # No context manager: lifespan (database bootstrap) is not needed here
    yield TestClient(app)
    app.dependency_overrides.clear()


def _starts(body):
    return [s["startISO"][11:16] for s in body["slots"]]


class TestListing:

    def test_salo_monday(self, client):
        response = client.post("/getBusySlotsOnBehalfOfAdmin", json=LISTING)
        assert response.status_code == 200
        body = response.json()
        assert _starts(body) == [f"{h:02d}:00" for h in range(9, 18)]
        assert body["slots"][0] == {
            "startISO": "2024-06-10T09:00:00+02:00",
            "endISO": "2024-06-10T10:00:00+02:00",
        }
        assert "approximate" not in body

    def test_api_prefix(self, client):
        response = client.post("/api/getBusySlotsOnBehalfOfAdmin", json=LISTING)
        assert response.status_code == 200
        assert len(response.json()["slots"]) == 9

    def test_calendar_busy_removes_slot(self, client, app_state):
        app_state["gateway"].busy["primary"] = [(local(MONDAY, "12:00"), local(MONDAY, "13:00"))]
        body = client.post("/getBusySlotsOnBehalfOfAdmin", json=LISTING).json()
        assert "12:00" not in _starts(body)
        assert app_state["gateway"].queries == [["primary", "salo@cal"]]

    def test_unreadable_calendar_does_not_fail_listing(self, client, app_state):
        app_state["gateway"].unreadable["salo@cal"] = "notFound"
        response = client.post("/getBusySlotsOnBehalfOfAdmin", json=LISTING)
        assert response.status_code == 200
        assert len(response.json()["slots"]) == 9

    def test_unknown_location_is_empty(self, client):
        response = client.post(
            "/getBusySlotsOnBehalfOfAdmin", json={**LISTING, "locationId": "Garda"}
        )
        assert response.status_code == 200
        assert response.json() == {"slots": []}

    def test_step_override(self, client):
        body = client.post(
            "/getBusySlotsOnBehalfOfAdmin", json={**LISTING, "slotStepMinutes": 30}
        ).json()
        assert _starts(body)[:2] == ["09:00", "09:30"]

    def test_naive_window_is_operating_timezone(self, client):
        payload = {**LISTING, "data": {"timeMin": "2024-06-10T00:00:00", "timeMax": "2024-06-11T00:00:00"}}
        body = client.post("/getBusySlotsOnBehalfOfAdmin", json=payload).json()
        assert body["slots"][0]["startISO"] == "2024-06-10T09:00:00+02:00"

    @pytest.mark.parametrize("data", [
        {"timeMin": "2024-06-11T00:00:00+02:00", "timeMax": "2024-06-10T00:00:00+02:00"},
        {"timeMin": "2024-06-10T00:00:00+02:00", "timeMax": "2024-09-10T00:00:00+02:00"},
        {"timeMin": "yesterday", "timeMax": "2024-06-10T00:00:00+02:00"},
    ])
    def test_bad_window(self, client, data):
        response = client.post("/getBusySlotsOnBehalfOfAdmin", json={**LISTING, "data": data})
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"

    def test_missing_location(self, client):
        response = client.post("/getBusySlotsOnBehalfOfAdmin", json={"data": LISTING["data"]})
        assert response.status_code == 400

    def test_approximate(self, client, app_state):
        app_state["gateway"].busy["primary"] = [(local(MONDAY, "12:00"), local(MONDAY, "13:00"))]
        body = client.post("/getApproximateSlots", json=LISTING).json()
        assert body["approximate"] is True
        assert len(body["slots"]) == 9
        assert app_state["gateway"].queries == []


class TestCreateBooking:

    def test_book_then_slot_disappears(self, client, app_state):
        response = client.post("/createBooking", json=BOOKING)
        assert response.status_code == 200
        body = response.json()
        assert body == {
            "success": True,
            "bookingId": make_slot_id("Salò", "tennis", local(MONDAY, "10:00")),
            "status": "confirmed",
            "gcalEventId": "evt1",
        }
        calendar_id, _ = app_state["gateway"].created["evt1"]
        assert calendar_id == "salo@cal"

        listing = client.post("/getBusySlotsOnBehalfOfAdmin", json=LISTING).json()
        assert "10:00" not in _starts(listing)
        assert len(listing["slots"]) == 8

    def test_duplicate_is_conflict(self, client, app_state):
        assert client.post("/createBooking", json=BOOKING).status_code == 200
        response = client.post("/api/createBooking", json=BOOKING)
        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "SlotTaken"
        assert len(app_state["booking_store"].all()) == 1

    def test_overlapping_request_is_conflict(self, client):
        client.post("/createBooking", json=BOOKING)
        response = client.post(
            "/createBooking", json={**BOOKING, "dateISO": "2024-06-10T10:30:00+02:00"}
        )
        assert response.status_code == 409

    def test_locked_slot(self, client, app_state):
        slot_id = make_slot_id("Salò", "tennis", local(MONDAY, "10:00"))
        app_state["lock_store"].acquire(slot_id, 30)
        response = client.post("/createBooking", json=BOOKING)
        assert response.status_code == 409
        assert response.json()["error"] == "SlotLocked"

    def test_calendar_outage_books_as_pending(self, client, app_state):
        app_state["gateway"].fail_create = True
        response = client.post("/createBooking", json=BOOKING)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "pending"
        assert "gcalEventId" not in body
        assert body["mirrorError"] == "ExternalCalendarUnavailable"

    def test_no_credentials_books_as_pending(self, client, app_state):
        app_state["gateway"].configured = False
        body = client.post("/createBooking", json=BOOKING).json()
        assert body["status"] == "pending"
        assert "mirrorError" not in body

    def test_explicit_target_calendar(self, client, app_state):
        client.post("/createBooking", json={**BOOKING, "targetCalendarId": "coach@cal"})
        calendar_id, _ = app_state["gateway"].created["evt1"]
        assert calendar_id == "coach@cal"

    def test_busy_target_calendar_is_conflict(self, client, app_state):
        gateway = app_state["gateway"]
        gateway.busy["coach@cal"] = [(local(MONDAY, "10:00"), local(MONDAY, "11:00"))]

        response = client.post("/createBooking", json={**BOOKING, "targetCalendarId": "coach@cal"})

        assert response.status_code == 409
        assert response.json()["error"] == "SlotNoLongerAvailable"
        assert "coach@cal" in gateway.queries[-1]
        assert gateway.created == {}
        assert app_state["booking_store"].all() == []

    def test_busy_default_calendar_is_conflict(self, client, app_state):
        app_state["rule_store"].calendars.clear()
        client.app.dependency_overrides[get_default_calendar_id] = lambda: "office@cal"
        app_state["gateway"].busy["office@cal"] = [(local(MONDAY, "09:30"), local(MONDAY, "10:30"))]

        response = client.post("/createBooking", json=BOOKING)

        assert response.status_code == 409
        assert app_state["gateway"].created == {}

    def test_unexpected_mirror_error_books_as_pending(self, client, app_state):

        class BrokenGateway(FakeCalendarGateway):
            def create_event(self, calendar_id, event):
                raise RuntimeError("discovery failed")

        app_state["gateway"] = BrokenGateway()
        response = client.post("/createBooking", json=BOOKING)

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert len(app_state["booking_store"].all()) == 1

    def test_service_id_falls_back_to_lesson(self, client):
        payload = {k: v for k, v in BOOKING.items() if k != "sport"}
        body = client.post("/createBooking", json=payload).json()
        assert body["bookingId"] == make_slot_id("Salò", "lesson", local(MONDAY, "10:00"))

    @pytest.mark.parametrize("change", [
        {"clientName": ""},
        {"clientName": "   "},
        {"durationMinutes": 0},
        {"durationMinutes": 600},
        {"clientEmail": "nope"},
        {"dateISO": "tomorrow at ten"},
    ])
    def test_invalid_request(self, client, change):
        response = client.post("/createBooking", json={**BOOKING, **change})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "InvalidRequest"

    def test_missing_field(self, client):
        payload = {k: v for k, v in BOOKING.items() if k != "clientName"}
        response = client.post("/createBooking", json=payload)
        assert response.status_code == 400
        assert "clientName" in response.json()["message"]

    def test_store_outage_is_503(self, client, app_state):

        class DownStore:
            def list_overlapping(self, location_id, window):
                raise StoreUnavailable("database is locked")

        app_state["booking_store"] = DownStore()
        response = client.post("/createBooking", json=BOOKING)
        assert response.status_code == 503
        assert response.json()["error"] == "StoreUnavailable"
        # Lock released even though the attempt failed
        slot_id = make_slot_id("Salò", "tennis", local(MONDAY, "10:00"))
        assert not app_state["lock_store"].is_locked(slot_id)


class TestCheckSlotFree:

    def test_free(self, client):
        response = client.post("/checkSlotFree", json={
            "startISO": "2024-06-10T10:00:00+02:00",
            "endISO": "2024-06-10T11:00:00+02:00",
            "locationId": "Salò",
        })
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "anyBusy": False,
            "busyMap": {"primary": [], "salo@cal": []},
        }

    def test_busy_calendar_and_booking(self, client, app_state):
        app_state["gateway"].busy["primary"] = [(local(MONDAY, "10:30"), local(MONDAY, "12:00"))]
        client.post("/createBooking", json={**BOOKING, "dateISO": "2024-06-10T09:00:00+02:00"})

        body = client.post("/checkSlotFree", json={
            "startISO": "2024-06-10T09:30:00+02:00",
            "endISO": "2024-06-10T11:00:00+02:00",
            "locationId": "Salò",
        }).json()
        assert body["anyBusy"] is True
        assert len(body["busyMap"]["primary"]) == 1
        assert len(body["busyMap"]["bookings"]) == 1

    def test_without_location_checks_selected_calendars_only(self, client, app_state):
        body = client.post("/checkSlotFree", json={
            "startISO": "2024-06-10T10:00:00+02:00",
            "endISO": "2024-06-10T11:00:00+02:00",
        }).json()
        assert body["busyMap"] == {"primary": []}

    def test_inverted_window(self, client):
        response = client.post("/checkSlotFree", json={
            "startISO": "2024-06-10T11:00:00+02:00",
            "endISO": "2024-06-10T10:00:00+02:00",
        })
        assert response.status_code == 400


class TestServiceEndpoints:

    def test_check_server_setup(self, client, app_state):
        assert client.get("/checkServerSetup").json() == {"ok": True, "isConfigured": True}
        app_state["gateway"].configured = False
        assert client.get("/checkServerSetup").json()["isConfigured"] is False

    def test_health(self, client, monkeypatch):
        engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        monkeypatch.setattr(main, "redis_client", fakeredis.FakeRedis(decode_responses=True))
        monkeypatch.setattr(main, "SessionLocal", sessionmaker(bind=engine))

        assert client.get("/health").json() == {"redis": True, "database": True}


class TestAuditLog:

    def test_request_is_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="lesson_booking.audit"):
            client.post("/getBusySlotsOnBehalfOfAdmin", json=LISTING)
        audit = [r for r in caplog.records if r.name == "lesson_booking.audit"]
        record = json.loads(audit[-1].getMessage())
        assert record["path"] == "/getBusySlotsOnBehalfOfAdmin"
        assert record["status"] == 200

    def test_conflict_logged_as_warning(self, client, caplog):
        client.post("/createBooking", json=BOOKING)
        with caplog.at_level(logging.INFO, logger="lesson_booking.audit"):
            client.post("/createBooking", json=BOOKING)
        audit = [r for r in caplog.records if r.name == "lesson_booking.audit"]
        assert audit[-1].levelno == logging.WARNING

    def test_health_checks_not_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="lesson_booking.audit"):
            client.get("/checkServerSetup")
        assert not [r for r in caplog.records if r.name == "lesson_booking.audit"]
