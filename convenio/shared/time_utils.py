"""Timestamp helpers - all persisted instants are naive UTC"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

# Real-world UTC offsets span -12:00 to +14:00
MAX_OFFSET_MINUTES = 14 * 60


def utcnow() -> datetime:
    """Current instant as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming timestamp; naive values are assumed to be UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_valid_offset(offset_minutes: int) -> bool:
    return -MAX_OFFSET_MINUTES <= offset_minutes <= MAX_OFFSET_MINUTES


def local_to_utc(day: date, at: time, offset_minutes: int) -> datetime:
    """Convert a wall-clock date/time at a UTC offset (e.g. -180 for UTC-3) to naive UTC"""
    return datetime.combine(day, at) - timedelta(minutes=offset_minutes)


def utc_to_local_date(instant: datetime, offset_minutes: int) -> date:
    return (instant + timedelta(minutes=offset_minutes)).date()


def local_day_bounds(day: date, offset_minutes: int) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day observed at the given offset"""
    start = local_to_utc(day, time.min, offset_minutes)
    return start, start + timedelta(days=1)
