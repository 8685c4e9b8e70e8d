"""Canonical timestamp helpers.

Condition transition times are written to the store as RFC3339 UTC
instants with a Z suffix and seconds precision (YYYY-MM-DDTHH:MM:SSZ).
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

# Canonical ts_utc format: exactly 20 characters, YYYY-MM-DDTHH:MM:SSZ
TS_UTC_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


def utc_now() -> datetime:
    """Return current UTC time as tz-aware datetime."""
    return datetime.now(UTC)


def format_ts_utc_z(dt: datetime) -> str:
    """Format a datetime as canonical UTC instant string (YYYY-MM-DDTHH:MM:SSZ).

    Args:
        dt: Datetime to format. Must be timezone-aware. If not UTC, converts to UTC.

    Returns:
        Canonical instant string (exactly 20 characters).

    Raises:
        ValueError: If dt is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(f"Cannot format naive datetime {dt}")

    if dt.tzinfo != UTC:
        dt = dt.astimezone(UTC)

    iso_str = dt.isoformat(timespec="seconds")
    if iso_str.endswith("+00:00"):
        return iso_str[:-6] + "Z"
    return iso_str


def now_ts_utc_z() -> str:
    """Return current UTC time as canonical instant string."""
    return format_ts_utc_z(utc_now())
