"""Time utilities (UTC now, month keys, minute truncation)."""
from __future__ import annotations
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def current_month(now: datetime | None = None) -> str:
    """Reporting month key (YYYY-MM) for ``now`` or the current UTC time."""
    return (now or utc_now()).strftime("%Y-%m")

def as_utc(value: datetime) -> datetime:
    # Naive timestamps coming back from sqlite are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def truncate_to_minute(value: datetime) -> datetime:
    return as_utc(value).replace(second=0, microsecond=0)

__all__ = ["utc_now", "current_month", "as_utc", "truncate_to_minute"]
