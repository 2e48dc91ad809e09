"""
Common primitives: identifiers and UTC time handling.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidInput


def generate_id() -> str:
    """Generate a new object id (UUID4, canonical string form)."""
    return str(uuid.uuid4())


def parse_id(value: str, field: str = "id") -> str:
    """Validate that ``value`` is a UUID and return its canonical form."""
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        raise InvalidInput(
            f"Invalid {field}",
            details={"field": field, "reason": "must be a UUID"},
        )


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO-8601 UTC with a ``Z`` suffix."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
