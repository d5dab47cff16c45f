"""Timestamp normalization for listing entries."""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

from dateutil import parser as date_parser

ABSOLUTE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T")
RELATIVE_PATTERN = re.compile(r"(\d+)\s*(minute|hour|day)s?\s*ago", re.IGNORECASE)
UNIT_SECONDS = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}


def normalize_timestamp(raw: Optional[str],
                        now: dt.datetime) -> Optional[dt.datetime]:
    """Convert an absolute or relative timestamp into an aware UTC datetime.

    Returns ``None`` when the text cannot be interpreted; callers treat that as
    an unknown time rather than an error.
    """
    if not raw:
        return None
    text = raw.strip()
    if not text:
        return None

    if ABSOLUTE_PATTERN.match(text):
        # Hacker News appends the epoch seconds after the ISO value.
        return _parse_iso(text.split()[0])

    match = RELATIVE_PATTERN.search(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        return _as_utc(now) - dt.timedelta(seconds=amount * UNIT_SECONDS[unit])

    # Missing date fields come from the caller's day, not the wall clock.
    default = _as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        return _as_utc(date_parser.parse(text, default=default))
    except (ValueError, OverflowError):
        return None


def _parse_iso(value: str) -> Optional[dt.datetime]:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return _as_utc(dt.datetime.fromisoformat(value))
    except ValueError:
        return None


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
