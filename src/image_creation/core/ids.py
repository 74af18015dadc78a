"""Canonical ID and timestamp factories.

All modules import from here instead of calling ``uuid`` / ``datetime``
directly, so tests can reason about a single source of identity and time.

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``, never naive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_id() -> uuid.UUID:
    """Generate a new UUID v4.  Use for all entity IDs."""
    return uuid.uuid4()


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC.

    Some stores (SQLite) drop tzinfo on round-trip.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_uuid(raw: str | uuid.UUID) -> uuid.UUID:
    """Parse *raw* into a UUID.  Raises ``ValueError`` on malformed input."""
    if isinstance(raw, uuid.UUID):
        return raw
    return uuid.UUID(str(raw))
