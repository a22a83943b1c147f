"""Timestamp normalization utilities for SignalFusion.

Upstream feeds disagree on time formats (epoch milliseconds, RFC 822, ISO 8601
with and without offsets). Always route source timestamps through
parse_timestamp() so that every RawSignal carries a tz-aware UTC datetime.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as dateutil_parser

# Epoch values above this are treated as milliseconds (≈ year 2286 in seconds)
_EPOCH_MILLIS_CUTOFF = 10_000_000_000


def utcnow() -> datetime:
    """Current time as a tz-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse any supported timestamp representation into a UTC datetime.

    Handles datetimes, epoch seconds / milliseconds (int, float or numeric
    string), and free-form date strings via dateutil.

    Args:
        raw: Raw timestamp value from a source payload.

    Returns:
        tz-aware UTC datetime, or None if the value cannot be parsed.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return _from_epoch(float(raw))

    text = str(raw).strip()
    try:
        return _from_epoch(float(text))
    except ValueError:
        pass

    try:
        return ensure_utc(dateutil_parser.parse(text))
    except (ValueError, OverflowError, TypeError):
        return None


def _from_epoch(value: float) -> Optional[datetime]:
    if math.isnan(value) or math.isinf(value):
        return None
    if abs(value) >= _EPOCH_MILLIS_CUTOFF:
        value /= 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
