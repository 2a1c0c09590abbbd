"""Reading period extraction.

Turns each book's start/finish dates into an inclusive ``ReadingPeriod``
and expands periods into reading days. Books with a missing boundary or
an inverted range are skipped, never raised: imported data is expected to
be partial.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from .dates import iter_days
from .history import ReadingDaySet
from .schemas import Book, BookStatus, ReadingPeriod

logger = logging.getLogger(__name__)

# A single book read for longer than this is probably a data error
MAX_REASONABLE_PERIOD_DAYS = 365


@dataclass
class PeriodWarning:
    """A period that is valid but worth a second look."""

    period: ReadingPeriod
    message: str


@dataclass
class PeriodStats:
    """Summary statistics over a list of periods."""

    total_books: int = 0
    total_days: int = 0
    unique_days: int = 0
    average_days_per_book: int = 0
    overlapping_periods: int = 0


def period_for_book(book: Book) -> Optional[ReadingPeriod]:
    """Build the reading period for one book, or None if it has no usable range."""
    if not book.date_started or not book.date_finished:
        return None

    if book.date_finished < book.date_started:
        logger.debug(
            "Start date is after end date for book %r: start=%s, end=%s",
            book.title, book.date_started, book.date_finished,
        )
        return None

    return ReadingPeriod(
        book_id=book.id,
        title=book.title,
        author=book.author,
        start_date=book.date_started,
        end_date=book.date_finished,
    )


def single_reading_dates(book: Book) -> tuple[Optional[date], Optional[date]]:
    """Known reading days of a book that has only one date boundary.

    Returns:
        (start day if progress was made, finish day if finished). Both are
        None when the book has both boundaries, valid or inverted.
    """
    if book.date_started and book.date_finished:
        return None, None

    started = book.date_started if book.date_started and book.progress > 0 else None
    finished = None
    if book.date_finished and (book.progress >= 100 or book.status == BookStatus.FINISHED):
        finished = book.date_finished
    return started, finished


def extract_reading_periods(books: Iterable[Book]) -> list[ReadingPeriod]:
    """Extract one period per book that has both a start and a finish date."""
    periods = []
    for book in books:
        period = period_for_book(book)
        if period is not None:
            periods.append(period)
    return periods


def generate_reading_days(periods: Iterable[ReadingPeriod]) -> ReadingDaySet:
    """Every day covered by any period; overlaps count once."""
    days = ReadingDaySet()
    for period in periods:
        for day in iter_days(period.start_date, period.end_date):
            days.add(day)
    return days


def validate_reading_periods(
    periods: Iterable[ReadingPeriod],
    today: Optional[date] = None,
) -> tuple[list[ReadingPeriod], list[PeriodWarning]]:
    """Flag suspicious periods.

    All periods are returned as valid; warnings are advisory so the user
    can review them.
    """
    today = today or date.today()
    valid = []
    warnings = []

    for period in periods:
        if period.total_days > MAX_REASONABLE_PERIOD_DAYS:
            warnings.append(PeriodWarning(
                period,
                f"Very long reading period ({period.total_days} days). "
                "Consider checking dates.",
            ))

        if period.total_days == 1:
            warnings.append(PeriodWarning(
                period, "Book completed in one day. This is fine but unusual.",
            ))

        if period.end_date > today:
            warnings.append(PeriodWarning(
                period, f"End date is in the future ({period.end_date.isoformat()}).",
            ))

        valid.append(period)

    return valid, warnings


def get_reading_period_stats(periods: list[ReadingPeriod]) -> PeriodStats:
    """Compute totals and overlap counts for a list of periods."""
    if not periods:
        return PeriodStats()

    total_days = sum(p.total_days for p in periods)

    overlapping = 0
    for i, first in enumerate(periods):
        for second in periods[i + 1:]:
            if first.start_date <= second.end_date and second.start_date <= first.end_date:
                overlapping += 1

    return PeriodStats(
        total_books=len(periods),
        total_days=total_days,
        unique_days=len(generate_reading_days(periods)),
        average_days_per_book=round(total_days / len(periods)),
        overlapping_periods=overlapping,
    )
