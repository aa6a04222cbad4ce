"""Calendar-day helpers for ledger dates (all in UTC)."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple, Union

DateLike = Union[date, datetime, str]

CLAIM_HOUR_UTC = 12


def to_utc_datetime(value: DateLike) -> datetime:
    """Parse an ISO date/datetime (or pass one through) as an aware UTC datetime.

    Naive datetimes are taken to be UTC already.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text) if "T" in text or " " in text else date.fromisoformat(text)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def calendar_day(value: DateLike) -> date:
    """The UTC calendar day a value falls on.

    A bare date string like ``2024-01-01`` is that day; a datetime is first
    converted to UTC.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and "T" not in value and " " not in value.strip():
        return date.fromisoformat(value.strip())
    return to_utc_datetime(value).date()


def normalize_claim_date(value: DateLike) -> datetime:
    """Pin a claim to noon UTC of its calendar day to avoid boundary drift"""
    return datetime.combine(calendar_day(value), time(CLAIM_HOUR_UTC), tzinfo=timezone.utc)


def day_bounds(value: DateLike) -> Tuple[datetime, datetime]:
    """Inclusive ``[start_of_day, end_of_day]`` in UTC"""
    day = calendar_day(value)
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


def as_utc(value: datetime) -> datetime:
    """Re-attach UTC to datetimes read back from backends that drop tzinfo"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
