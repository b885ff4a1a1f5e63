"""
Core types for ttlkv.

- Entry: the frozen result shape returned by reads and counter updates
- Row: the raw column tuple the statements hand back
- Helpers for converting between datetimes and whole epoch seconds
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Expiries must stay convertible back to a datetime
MIN_EPOCH_SECONDS = -62135596800  # 0001-01-01T00:00:00Z
MAX_EPOCH_SECONDS = 253402300799  # 9999-12-31T23:59:59Z


def to_epoch_seconds(value: datetime | int) -> int:
    """Convert a datetime (naive values are taken as UTC) or epoch int to whole seconds."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - EPOCH
        return delta.days * 86400 + delta.seconds
    return int(value)


def from_epoch_seconds(value: int) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return EPOCH + timedelta(seconds=value)


def in_epoch_range(value: float) -> bool:
    return MIN_EPOCH_SECONDS <= value <= MAX_EPOCH_SECONDS


def ttl_to_seconds(ttl: float | timedelta) -> float:
    """Normalize a TTL given as seconds or a timedelta."""
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class Row(NamedTuple):
    """Columns selected by every reading statement, in order."""

    json_data: str | None
    counter: int
    expires_at: int | None
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Entry:
    """A live entry as seen by the caller.

    ``data`` is the deserialized payload, or None when the entry was
    stored without one. ``counter`` is independent of ``data``.
    """

    data: Any
    counter: int
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime
