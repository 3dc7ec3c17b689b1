"""Date manipulation utilities"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_date(value: date | datetime) -> date:
    """Collapse a datetime to its calendar date; dates pass through"""
    return value.date() if isinstance(value, datetime) else value


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from start to end (negative if end is earlier)"""
    return (as_date(end) - as_date(start)).days


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes from the wire as UTC"""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
