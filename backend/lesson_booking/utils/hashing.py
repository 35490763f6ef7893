# Deterministic ids for slots (bookings and locks share them).

import hashlib
from datetime import datetime, timezone


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def utc_iso(dt: datetime) -> str:
    """Canonical UTC form used for hashing and storage."""
    if dt.tzinfo is None:
        raise ValueError("naive datetime has no defined instant")
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def make_slot_id(location_id: str, service_id: str, start: datetime) -> str:
    """
    Same location + service + instant → same id, whatever offset the
    caller used to express the start time.
    """
    return hash_value(f"{location_id}|{service_id}|{utc_iso(start)}")
