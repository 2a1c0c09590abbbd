"""Import reconciliation.

Folds a batch of imported books into existing reading history. Imports
are best-effort: books without a usable date range are left out of the
counts rather than reported as errors.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional

from .calculator import (
    DEFAULT_DAILY_GOAL,
    calculate_streak,
    calculate_streak_with_history,
    calculate_streaks_from_days,
)
from .history import ReadingDaySet, StreakHistory
from .periods import extract_reading_periods, generate_reading_days
from .schemas import Book, ReadingPeriod

logger = logging.getLogger(__name__)

# Decides whether an imported book is the same book as an existing one
BookEquivalence = Callable[[Book, Book], bool]


def normalize_text(s: Optional[str]) -> str:
    """Lowercase and collapse whitespace."""
    if not s:
        return ""
    return " ".join(s.lower().split())


def same_title_and_author(book1: Book, book2: Book) -> bool:
    """Case-insensitive title + author match."""
    title = normalize_text(book1.title)
    return bool(title) and (
        title == normalize_text(book2.title)
        and normalize_text(book1.author) == normalize_text(book2.author)
    )


def period_keys(period: ReadingPeriod) -> list[tuple]:
    """Identities of a period: its range under its book id and its title/author.

    A period stored before its book had an id matches the same period
    re-imported with the id filled in.
    """
    keys = []
    if period.book_id:
        keys.append(("id", period.book_id, period.start_date, period.end_date))
    if normalize_text(period.title):
        book = f"{normalize_text(period.title)}|{normalize_text(period.author)}"
        keys.append(("title", book, period.start_date, period.end_date))
    if not keys:
        keys.append(("range", period.start_date, period.end_date))
    return keys


def merge_book_periods(
    existing: Iterable[ReadingPeriod],
    new: Iterable[ReadingPeriod],
) -> list[ReadingPeriod]:
    """Append new periods, skipping any already present."""
    merged = []
    seen = set()
    for period in [*existing, *new]:
        keys = period_keys(period)
        if any(key in seen for key in keys):
            continue
        seen.update(keys)
        merged.append(period)
    return merged


@dataclass
class StreakImportResult:
    """Result of folding an import into reading history."""

    periods_processed: int = 0
    days_added: int = 0
    reading_days_generated: ReadingDaySet = field(default_factory=ReadingDaySet)
    new_current_streak: int = 0
    new_longest_streak: int = 0
    old_current_streak: int = 0
    old_longest_streak: int = 0
    imported_count: int = 0
    updated_history: Optional[StreakHistory] = None

    # Imported books that matched nothing already in the library
    new_books: list[Book] = field(default_factory=list)

    @property
    def found_nothing(self) -> bool:
        """A non-empty import produced no usable reading periods."""
        return self.imported_count > 0 and self.periods_processed == 0

    @property
    def current_streak_change(self) -> int:
        return self.new_current_streak - self.old_current_streak

    @property
    def longest_streak_change(self) -> int:
        return self.new_longest_streak - self.old_longest_streak


def calculate_streak_from_import(
    books: Iterable[Book],
    daily_goal: float = DEFAULT_DAILY_GOAL,
    today: Optional[date] = None,
) -> StreakImportResult:
    """Streaks implied by the reading periods of an imported batch alone."""
    books = list(books)
    old = calculate_streak(books, daily_goal, today)

    periods = extract_reading_periods(books)
    reading_days = generate_reading_days(periods)
    new = calculate_streaks_from_days(reading_days, today)

    result = StreakImportResult(
        periods_processed=len(periods),
        days_added=len(reading_days),
        reading_days_generated=reading_days,
        new_current_streak=new.current_streak,
        new_longest_streak=new.longest_streak,
        old_current_streak=old.current_streak,
        old_longest_streak=old.longest_streak,
        imported_count=len(books),
    )
    _log_result(result)
    return result


def adopt_existing_ids(
    imported: Iterable[Book],
    existing: list[Book],
    equivalent: BookEquivalence = same_title_and_author,
) -> tuple[list[Book], list[Book]]:
    """Match imported books against existing ones.

    Returns:
        (imported books with ids filled in from their existing match,
         imported books that match no existing book)
    """
    resolved = []
    new_books = []
    for book in imported:
        match = next((e for e in existing if equivalent(book, e)), None)
        if match is None:
            resolved.append(book)
            new_books.append(book)
        elif book.id is None and match.id is not None:
            resolved.append(book.model_copy(update={"id": match.id}))
        else:
            resolved.append(book)
    return resolved, new_books


def process_streak_import(
    imported_books: Iterable[Book],
    existing_books: Iterable[Book],
    existing_history: Optional[StreakHistory] = None,
    daily_goal: float = DEFAULT_DAILY_GOAL,
    today: Optional[date] = None,
    equivalent: BookEquivalence = same_title_and_author,
) -> StreakImportResult:
    """Fold imported books into existing history and report what changed.

    Args:
        imported_books: Newly imported books
        existing_books: Books already in the library
        existing_history: Stored history (optional)
        daily_goal: Daily pages goal
        today: Reference day (default: date.today())
        equivalent: Predicate deciding two books are the same book

    Returns:
        StreakImportResult whose ``updated_history`` is ready to persist
    """
    existing_books = list(existing_books)
    imported_books, new_books = adopt_existing_ids(imported_books, existing_books, equivalent)

    old = calculate_streak_with_history(existing_books, existing_history, daily_goal, today)

    imported_periods = extract_reading_periods(imported_books)
    imported_days = generate_reading_days(imported_periods)

    base = existing_history or StreakHistory()
    updated_history = StreakHistory(
        reading_days=base.reading_days.union(imported_days),
        book_periods=merge_book_periods(base.book_periods, imported_periods),
        last_calculated=datetime.now(timezone.utc),
        reading_day_entries=dict(base.reading_day_entries),
        version=base.version,
    )

    # Imported duplicates of existing books are already represented
    all_books = existing_books + new_books
    new = calculate_streak_with_history(all_books, updated_history, daily_goal, today)

    result = StreakImportResult(
        periods_processed=len(imported_periods),
        days_added=len(imported_days),
        reading_days_generated=imported_days,
        new_current_streak=new.current_streak,
        new_longest_streak=new.longest_streak,
        old_current_streak=old.current_streak,
        old_longest_streak=old.longest_streak,
        imported_count=len(imported_books),
        updated_history=updated_history,
        new_books=new_books,
    )
    _log_result(result)
    return result


def _log_result(result: StreakImportResult) -> None:
    if result.found_nothing:
        logger.warning(
            "Import of %d books contained no usable reading periods",
            result.imported_count,
        )
    else:
        logger.info(
            "Import processed %d periods, %d reading days (streak %d -> %d)",
            result.periods_processed, result.days_added,
            result.old_current_streak, result.new_current_streak,
        )
