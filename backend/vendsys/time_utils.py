# Overview: UTC helpers; timestamps are stored naive-UTC and serialized with a trailing Z.

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: datetime | None) -> str | None:
    """
    Serialize to ISO-8601 with a trailing 'Z', dropping microseconds.
    Naive values are taken as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
