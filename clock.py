"""UTC time helpers.

Timestamps are stored as naive UTC datetimes (SQLite drops tzinfo anyway).
Day keys are ISO dates (YYYY-MM-DD) of the UTC instant; month keys are YYYY-MM.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def day_key(dt: datetime) -> str:
    return as_naive_utc(dt).date().isoformat()


def yesterday_key(dt: datetime) -> str:
    return (as_naive_utc(dt).date() - timedelta(days=1)).isoformat()


def month_key(dt: datetime) -> str:
    return as_naive_utc(dt).strftime("%Y-%m")


def from_epoch(seconds) -> datetime | None:
    """Convert a unix timestamp to naive UTC. 0/None mean "unknown"."""
    if not seconds:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).replace(tzinfo=None)
