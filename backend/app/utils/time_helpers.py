from datetime import datetime, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_utc_optional(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def isoformat_utc(value: datetime) -> str:
    """Always return an ISO-8601 string with an explicit UTC offset"""
    return ensure_utc(value).isoformat()
