"""Utility functions for covid_abm.

Time helpers: the engine counts time in (fractional) days while the
quarantine schedule and the clock are calendar timestamps.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Union


def step_delta(dt: float) -> timedelta:
    """Calendar length of one tick of `dt` days (1/24 → 1 hour)."""
    return timedelta(days=dt)


def to_datetime(value: Union[str, date, datetime]) -> datetime:
    """Normalize a YAML/ISO timestamp to a naive datetime.

    Accepts datetime, date (midnight), or an ISO 8601 string. Aware
    timestamps are converted to UTC and their tzinfo dropped.

    Raises:
        TypeError: If the value is none of the above.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Cannot interpret {value!r} as a timestamp")
