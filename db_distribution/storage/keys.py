"""
Object key construction for backup artifacts.

Keys are hierarchical and deterministic:

    {prefix}/{server}/{db}/{YYYY}/{MM}/{DD}/{ticket}/db_full_{db}_{YYYYMMDD_HHMM}.bak

The same inputs (including the timestamp) always yield the same key, so a
retried claim never scatters a backup across several blobs. Minute
granularity is enough because two jobs colliding in the same minute would
also need the same server, database and ticket.
"""

from __future__ import annotations

import re
from datetime import datetime

from ..errors import InvalidInput
from ..primitives import ensure_utc

# Server DNS names keep dots; database and ticket segments do not.
_UNSAFE_SERVER_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_OBJECT_KEY_CHARS = re.compile(r"[a-zA-Z0-9._/-]+")

MAX_OBJECT_KEY_LENGTH = 1024
MAX_SEGMENT_LENGTH = 128
DEFAULT_FILENAME = "backup.bak"


def _segment(value: str) -> str:
    """Truncate, and never yield an empty, "." or ".." path segment."""
    value = value[:MAX_SEGMENT_LENGTH]
    if not value.strip("."):
        return "_" * max(len(value), 1)
    return value


def sanitize_server(value: str) -> str:
    return _segment(_UNSAFE_SERVER_CHARS.sub("_", value))


def sanitize_name(value: str) -> str:
    return _segment(_UNSAFE_NAME_CHARS.sub("_", value))


def format_timestamp(moment: datetime) -> str:
    """``YYYYMMDD_HHMM`` in UTC."""
    return ensure_utc(moment).strftime("%Y%m%d_%H%M")


def build_object_key(
    server_dns: str,
    database: str,
    ticket: str,
    timestamp: datetime,
    prefix: str,
) -> str:
    """Build the storage key for a backup artifact.

    Naive timestamps are taken as UTC.
    """
    moment = ensure_utc(timestamp)
    server = sanitize_server(server_dns)
    db_name = sanitize_name(database)
    ticket_segment = sanitize_name(ticket)
    prefix = prefix.strip("/")

    return (
        f"{prefix}/{server}/{db_name}/"
        f"{moment:%Y}/{moment:%m}/{moment:%d}/{ticket_segment}/"
        f"db_full_{db_name}_{format_timestamp(moment)}.bak"
    )


def object_key_filename(key: str) -> str:
    """Last path segment of a key, used as the download filename."""
    filename = key.rstrip("/").split("/")[-1]
    return filename or DEFAULT_FILENAME


def validate_object_key(key: str, prefix: str) -> str:
    """Check a runner-supplied key before any credential is issued for it.

    Raises:
        InvalidInput: If the key escapes the backups prefix or is malformed
    """
    prefix = prefix.strip("/")

    def reject(reason: str) -> InvalidInput:
        return InvalidInput(
            "Invalid blob path", details={"field": "blobPath", "reason": reason}
        )

    if not key or len(key) > MAX_OBJECT_KEY_LENGTH:
        raise reject(f"must be 1-{MAX_OBJECT_KEY_LENGTH} characters")
    if not _OBJECT_KEY_CHARS.fullmatch(key):
        raise reject("contains unsupported characters")
    if not key.startswith(f"{prefix}/"):
        raise reject(f"must start with '{prefix}/'")
    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise reject("must not contain empty or relative segments")
    return key
