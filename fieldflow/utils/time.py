"""Time helpers.

All timestamps are UTC and timezone-aware. Services that need a controllable
"now" take a ``clock`` callable returning an aware datetime; ``utc_now`` is
the production default.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, clock: Clock | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    return (clock or utc_now)().isoformat()


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: ISO string (``Z`` suffix accepted) or datetime

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, half rounding up (never negative)."""
    seconds = (end - start).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


def next_local_occurrence(now: datetime, hour: int, *, tz: tzinfo | None = None) -> datetime:
    """Next time the local wall clock reads ``hour``:00 (today if not yet passed)."""
    local_now = now.astimezone(tz) if tz is not None else now.astimezone()
    candidate = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= local_now:
        candidate += timedelta(days=1)
    return candidate
