"""Naive-UTC time helpers; every persisted timestamp is naive UTC."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Half-open [00:00, next 00:00) bounds of the calendar day containing moment."""
    start = start_of_day(moment)
    return start, start + timedelta(days=1)


def as_date_str(value) -> str:
    """Render a SQL date() result as YYYY-MM-DD (SQLite returns text, PostgreSQL a date)."""
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)


def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if moment is None or moment.tzinfo is None:
        return moment
    return (moment - moment.utcoffset()).replace(tzinfo=None)
