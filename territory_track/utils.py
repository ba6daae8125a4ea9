"""General utility helpers shared across modules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pandas as pd


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""

    return datetime.now(timezone.utc)


def to_utc_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into aware UTC.

    Fractional seconds may carry any number of digits, as Postgres trims
    trailing zeros.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_aware(value)
    text = str(value).strip()
    if not text:
        return None
    parsed = pd.to_datetime(text, utc=True, errors="coerce", format="ISO8601")
    if pd.isna(parsed):
        return None
    return to_utc_aware(parsed.to_pydatetime())


def isoformat_utc(value: datetime) -> str:
    return to_utc_aware(value).isoformat()


def format_duration(seconds: float) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS`` once past an hour."""

    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    mins, sec = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{mins:02d}:{sec:02d}"
    return f"{mins}:{sec:02d}"


def mask_tail(value: str | None, visible: int = 4) -> str:
    """Mask all but the last ``visible`` characters of a secret."""

    if not value:
        return ""
    tail = value[-visible:]
    return f"****{tail}" if len(value) > visible else "****" + tail
