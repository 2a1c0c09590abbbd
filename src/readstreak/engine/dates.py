"""Calendar-day helpers shared by the streak engine.

All reading-day arithmetic is done on ``date`` values in local time.
Timezone-aware timestamps are converted to local time by ``local_day``
before they are truncated.
"""

import re
from datetime import date, datetime, timedelta
from typing import Iterator, Union

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """Truncate a date, datetime or ISO string to a calendar date.

    Raises:
        ValueError: If a string is not a valid ISO date or datetime
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if ISO_DATE_PATTERN.match(value):
        return date.fromisoformat(value)
    return datetime.fromisoformat(value).date()


def format_date_iso(value: DateLike) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return to_date(value).isoformat()


def is_iso_date(value: str) -> bool:
    """Check that a string is a real ``YYYY-MM-DD`` calendar date."""
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def days_between(start: DateLike, end: DateLike) -> int:
    """Number of calendar days from start to end (negative if end is earlier)."""
    return (to_date(end) - to_date(start)).days


def iter_days(start: DateLike, end: DateLike) -> Iterator[date]:
    """Yield every date from start to end inclusive."""
    current = to_date(start)
    last = to_date(end)
    one_day = timedelta(days=1)
    while current <= last:
        yield current
        current += one_day


def local_day(value: datetime) -> date:
    """Calendar date of a timestamp in local time.

    Naive timestamps are already wall-clock time and are truncated as-is.
    """
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()
