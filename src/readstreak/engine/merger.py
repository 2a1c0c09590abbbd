"""Reading-day merging.

Combines reading-day evidence from every source into one entry per date:

1. Book periods (start -> finish) become ``book_completion`` sources
2. Days stored in the streak history keep their recorded provenance,
   falling back to the history's book periods, then to ``manual``
3. Currently-reading books cover start -> last modification
4. Books whose progress was edited today add a ``progress_update``
   source carrying an estimate of pages read

Merging only ever unions sources for a date; nothing is overwritten, so
the reason a day was counted stays inspectable.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from .dates import format_date_iso, is_iso_date, iter_days, local_day
from .history import ReadingDaySet, StreakHistory
from .periods import period_for_book, single_reading_dates
from .schemas import (
    Book,
    BookStatus,
    ReadingDataSource,
    ReadingDayEntry,
    SourceType,
)

logger = logging.getLogger(__name__)

ReadingDayMap = dict[str, ReadingDayEntry]

# Progress assumed for a same-day edit when the previous value is unknown
ASSUMED_PROGRESS_STEP = 10

# Reading dates older than this are flagged by validate_reading_data
OLD_DATE_WARNING_DAYS = 2 * 365


@dataclass
class ReadingStatistics:
    """Summary of a merged reading-day map."""

    total_reading_days: int = 0
    total_books: int = 0
    source_breakdown: dict[str, int] = field(default_factory=dict)
    earliest: Optional[str] = None
    latest: Optional[str] = None


@dataclass
class ReadingDataValidation:
    """Result of validating a merged reading-day map."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values."""
    return int(math.floor(value + 0.5))


def estimate_pages_read(
    old_progress: float,
    new_progress: float,
    total_pages: Optional[int] = None,
) -> int:
    """Estimate pages read from a change in percent progress.

    Uses the page count when known, otherwise one page per 10% (minimum 1).
    A zero or negative change reads as no pages.
    """
    delta = new_progress - old_progress
    if delta <= 0:
        return 0
    if total_pages:
        return round_half_up(delta / 100 * total_pages)
    return max(1, round_half_up(delta / ASSUMED_PROGRESS_STEP))


def _as_timestamp(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


# ============================================================================
# Merging
# ============================================================================


def merge_reading_data(
    history: Optional[StreakHistory],
    books: Iterable[Book],
    today: Optional[date] = None,
) -> ReadingDayMap:
    """Merge history and books into a map of ISO date -> ReadingDayEntry.

    Args:
        history: Stored streak history (optional)
        books: Books with dates and progress
        today: Reference day for "today" sources (default: date.today())

    Returns:
        Map with exactly one entry per reading day, sorted by date
    """
    today = today or date.today()
    books = list(books)
    reading_day_map: ReadingDayMap = {}

    if history is not None:
        _process_history(reading_day_map, history)

    _process_book_periods(reading_day_map, books, today)
    _process_progress_updates(reading_day_map, books, today)

    return {day: _consolidate(reading_day_map[day]) for day in sorted(reading_day_map)}


def add_or_merge_entry(reading_day_map: ReadingDayMap, entry: ReadingDayEntry) -> None:
    """Insert an entry, unioning with any entry already on that date."""
    existing = reading_day_map.get(entry.date)
    if existing is None:
        reading_day_map[entry.date] = entry
    else:
        reading_day_map[entry.date] = resolve_conflicts([existing, entry])


def resolve_conflicts(entries: list[ReadingDayEntry]) -> ReadingDayEntry:
    """Union several entries for the same date into one.

    Raises:
        ValueError: If entries is empty or the dates differ
    """
    if not entries:
        raise ValueError("Cannot resolve conflicts for empty list")
    if len(entries) == 1:
        return entries[0]

    day = entries[0].date
    if any(e.date != day for e in entries):
        raise ValueError(f"Cannot merge entries for different dates into {day}")

    sources = []
    book_ids = set()
    notes = []
    for entry in entries:
        sources.extend(entry.sources)
        book_ids.update(entry.book_ids)
        if entry.notes and entry.notes not in notes:
            notes.append(entry.notes)

    return _consolidate(ReadingDayEntry(
        date=day,
        sources=sources,
        book_ids=sorted(book_ids),
        notes="; ".join(notes) if notes else None,
    ))


def _source_key(source: ReadingDataSource) -> tuple:
    return source.type.value, tuple(sorted(source.book_ids))


def _supersedes(candidate: ReadingDataSource, current: ReadingDataSource) -> bool:
    # Newest wins; on a tie a source carrying progress beats one without
    if candidate.timestamp != current.timestamp:
        return candidate.timestamp > current.timestamp
    return bool(candidate.metadata) and not current.metadata


def _consolidate(entry: ReadingDayEntry) -> ReadingDayEntry:
    """Drop duplicate sources and normalize book ids."""
    unique: dict[tuple, ReadingDataSource] = {}
    for source in entry.sources:
        key = _source_key(source)
        if key not in unique or _supersedes(source, unique[key]):
            unique[key] = source

    book_ids = set(entry.book_ids)
    for source in unique.values():
        book_ids.update(source.book_ids)

    return entry.model_copy(update={
        "sources": [unique[key] for key in sorted(unique)],
        "book_ids": sorted(book_ids),
    })


def _process_history(reading_day_map: ReadingDayMap, history: StreakHistory) -> None:
    # Expand stored periods once so each day can find the books that cover it
    period_books: dict[str, set[str]] = defaultdict(set)
    for period in history.book_periods:
        for day in iter_days(period.start_date, period.end_date):
            books = period_books[day.isoformat()]
            if period.book_id:
                books.add(period.book_id)

    for day in history.reading_days:
        explicit = history.reading_day_entries.get(day)
        if explicit is not None and explicit.sources:
            add_or_merge_entry(reading_day_map, explicit)
            continue

        if day in period_books:
            book_ids = sorted(period_books[day])
            source = ReadingDataSource(
                type=SourceType.BOOK_COMPLETION,
                timestamp=history.last_calculated,
                book_ids=book_ids,
            )
        else:
            book_ids = list(explicit.book_ids) if explicit else []
            source = ReadingDataSource(
                type=SourceType.MANUAL,
                timestamp=history.last_calculated,
                book_ids=book_ids,
            )

        add_or_merge_entry(reading_day_map, ReadingDayEntry(
            date=day,
            sources=[source],
            book_ids=book_ids,
            notes=explicit.notes if explicit else None,
        ))


def _process_book_periods(
    reading_day_map: ReadingDayMap,
    books: list[Book],
    today: date,
) -> None:
    for book in books:
        book_ids = [book.id] if book.id else []
        period = period_for_book(book)

        if period is not None:
            timestamp = book.date_modified or _as_timestamp(period.end_date)
            for day in iter_days(period.start_date, period.end_date):
                add_or_merge_entry(reading_day_map, ReadingDayEntry(
                    date=day.isoformat(),
                    sources=[ReadingDataSource(
                        type=SourceType.BOOK_COMPLETION,
                        timestamp=timestamp,
                        book_ids=book_ids,
                    )],
                    book_ids=book_ids,
                    notes=f'Reading "{book.title}"',
                ))
            continue

        # Still reading: count from the start day through the last edit
        if (
            book.status == BookStatus.CURRENTLY_READING
            and book.date_started
            and not book.date_finished
        ):
            end = local_day(book.date_modified) if book.date_modified else today
            if end < book.date_started:
                logger.debug("Skipping %r: modified before it was started", book.title)
                continue

            timestamp = book.date_modified or _as_timestamp(today)
            for day in iter_days(book.date_started, end):
                add_or_merge_entry(reading_day_map, ReadingDayEntry(
                    date=day.isoformat(),
                    sources=[ReadingDataSource(
                        type=SourceType.PROGRESS_UPDATE,
                        timestamp=timestamp,
                        book_ids=book_ids,
                    )],
                    book_ids=book_ids,
                    notes=f'Currently reading "{book.title}" ({book.progress:g}%)',
                ))
            continue

        # Only one boundary known: count just that day
        started, finished = single_reading_dates(book)
        if started:
            add_or_merge_entry(reading_day_map, ReadingDayEntry(
                date=started.isoformat(),
                sources=[ReadingDataSource(
                    type=SourceType.PROGRESS_UPDATE,
                    timestamp=book.date_modified or _as_timestamp(started),
                    book_ids=book_ids,
                )],
                book_ids=book_ids,
                notes=f'Started "{book.title}"',
            ))
        if finished:
            add_or_merge_entry(reading_day_map, ReadingDayEntry(
                date=finished.isoformat(),
                sources=[ReadingDataSource(
                    type=SourceType.BOOK_COMPLETION,
                    timestamp=book.date_modified or _as_timestamp(finished),
                    book_ids=book_ids,
                )],
                book_ids=book_ids,
                notes=f'Finished "{book.title}"',
            ))


def _process_progress_updates(
    reading_day_map: ReadingDayMap,
    books: list[Book],
    today: date,
) -> None:
    for book in books:
        if not book.date_modified or book.progress <= 0:
            continue
        if local_day(book.date_modified) != today:
            continue

        previous = max(0, book.progress - ASSUMED_PROGRESS_STEP)
        pages = estimate_pages_read(previous, book.progress, book.total_pages)
        book_ids = [book.id] if book.id else []

        add_or_merge_entry(reading_day_map, ReadingDayEntry(
            date=today.isoformat(),
            sources=[ReadingDataSource(
                type=SourceType.PROGRESS_UPDATE,
                timestamp=book.date_modified,
                book_ids=book_ids,
                metadata={"progress": pages},
            )],
            book_ids=book_ids,
            notes=f"Today's reading: {book.title}",
        ))


# ============================================================================
# Queries
# ============================================================================


def reading_days_of(reading_day_map: ReadingDayMap) -> ReadingDaySet:
    """The set of dates that have at least one source."""
    return ReadingDaySet(day for day, entry in reading_day_map.items() if entry.sources)


def get_reading_days_in_range(
    start_date: str,
    end_date: str,
    reading_data: ReadingDayMap,
) -> list[ReadingDayEntry]:
    """Entries between two ISO dates inclusive, ascending.

    Raises:
        ValueError: On malformed dates or start after end
    """
    if not is_iso_date(start_date) or not is_iso_date(end_date):
        raise ValueError("Invalid date format. Use YYYY-MM-DD format.")
    if start_date > end_date:
        raise ValueError("Start date must be before or equal to end date.")

    return [
        reading_data[day]
        for day in sorted(reading_data)
        if start_date <= day <= end_date
    ]


def get_reading_statistics(reading_data: ReadingDayMap) -> ReadingStatistics:
    """Count reading days, distinct books and days per source type."""
    breakdown = {source_type.value: 0 for source_type in SourceType}
    book_ids = set()

    for entry in reading_data.values():
        book_ids.update(entry.book_ids)
        for source_type in entry.source_types:
            breakdown[source_type.value] += 1

    days = sorted(reading_data)
    return ReadingStatistics(
        total_reading_days=len(days),
        total_books=len(book_ids),
        source_breakdown=breakdown,
        earliest=days[0] if days else None,
        latest=days[-1] if days else None,
    )


def validate_reading_data(
    reading_data: ReadingDayMap,
    today: Optional[date] = None,
) -> ReadingDataValidation:
    """Check a merged map for structural errors and suspicious dates."""
    today = today or date.today()
    oldest_expected = today - timedelta(days=OLD_DATE_WARNING_DAYS)
    result = ReadingDataValidation()

    for day, entry in reading_data.items():
        if not is_iso_date(day):
            result.errors.append(f"Invalid date format: {day}")
            continue
        if day != entry.date:
            result.errors.append(f"Entry dated {entry.date} stored under {day}")
        if not entry.sources:
            result.errors.append(f"No sources for date: {day}")

        if day > format_date_iso(today):
            result.warnings.append(f"Future date detected: {day}")
        elif day < oldest_expected.isoformat():
            result.warnings.append(f"Very old reading date: {day}")

    return result
