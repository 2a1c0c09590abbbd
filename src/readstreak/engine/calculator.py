"""Streak calculation.

Walks the merged set of reading days backwards from today to find the
current and longest streaks. Everything here is a pure function of its
inputs; callers load and persist history themselves.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from .dates import format_date_iso
from .history import ReadingDaySet, StreakHistory
from .merger import estimate_pages_read, merge_reading_data, reading_days_of
from .periods import extract_reading_periods, generate_reading_days
from .schemas import Book, ProgressEntry, StreakData

# Days scanned backwards from today. Older activity never affects streaks.
STREAK_LOOKBACK_DAYS = 365

# Pages per day
DEFAULT_DAILY_GOAL = 30


@dataclass
class StreakCounts:
    """Streak figures derived from a set of reading days."""

    current_streak: int = 0
    longest_streak: int = 0
    last_read_date: Optional[date] = None
    has_read_today: bool = False


def calculate_streaks_from_days(
    reading_days: Iterable,
    today: Optional[date] = None,
) -> StreakCounts:
    """Compute streaks over the last ``STREAK_LOOKBACK_DAYS`` days.

    The current streak is the run of reading days ending today, or ending
    yesterday while today has not been read yet. The longest streak is the
    longest run inside the window.

    Args:
        reading_days: ISO date strings (or dates) that count as read
        today: Reference day (default: date.today())

    Returns:
        StreakCounts
    """
    today = today or date.today()
    if not isinstance(reading_days, ReadingDaySet):
        reading_days = ReadingDaySet(reading_days)

    current_streak = 0
    longest_streak = 0
    run = 0
    last_read_date = None
    counting_current = True

    for offset in range(STREAK_LOOKBACK_DAYS):
        day = today - timedelta(days=offset)
        if day.isoformat() in reading_days:
            run += 1
            if last_read_date is None:
                last_read_date = day
            continue

        if offset == 0:
            # Not read yet today; yesterday can still carry the streak
            continue

        longest_streak = max(longest_streak, run)
        if counting_current:
            current_streak = run
            counting_current = False
        run = 0

    longest_streak = max(longest_streak, run)
    if counting_current:
        current_streak = run

    return StreakCounts(
        current_streak=current_streak,
        longest_streak=longest_streak,
        last_read_date=last_read_date,
        has_read_today=today.isoformat() in reading_days,
    )


def calculate_streak_with_history(
    books: Iterable[Book],
    streak_history: Optional[StreakHistory] = None,
    daily_goal: float = DEFAULT_DAILY_GOAL,
    today: Optional[date] = None,
) -> StreakData:
    """Streak data from books merged with stored history.

    Uses the same merged reading-day map the calendar view shows, so the
    streak and the calendar always agree.
    """
    today = today or date.today()
    merged = merge_reading_data(streak_history, books, today)
    counts = calculate_streaks_from_days(reading_days_of(merged), today)

    today_entry = merged.get(format_date_iso(today))
    today_progress = today_entry.progress if today_entry else 0

    return StreakData(
        current_streak=counts.current_streak,
        longest_streak=counts.longest_streak,
        last_read_date=counts.last_read_date,
        today_progress=today_progress,
        daily_goal=daily_goal,
        has_read_today=counts.has_read_today,
    )


def calculate_streak(
    books: Iterable[Book],
    daily_goal: float = DEFAULT_DAILY_GOAL,
    today: Optional[date] = None,
) -> StreakData:
    """Streak data from books alone."""
    return calculate_streak_with_history(books, None, daily_goal, today)


def track_progress_update(
    book: Book,
    old_progress: float,
    new_progress: float,
    now: Optional[datetime] = None,
) -> ProgressEntry:
    """Record a progress change with an estimate of pages read."""
    return ProgressEntry(
        date=now or datetime.now(timezone.utc),
        old_progress=old_progress,
        new_progress=new_progress,
        pages_read=estimate_pages_read(old_progress, new_progress, book.total_pages),
    )


def create_streak_history_from_books(
    books: Iterable[Book],
    today: Optional[date] = None,
) -> StreakHistory:
    """Build a fresh history from everything the books say about reading days.

    Days outside every reading period keep their entries, so a stored
    history still says which book evidence they came from.
    """
    books = list(books)
    merged = merge_reading_data(None, books, today)
    periods = extract_reading_periods(books)
    covered = generate_reading_days(periods)

    return StreakHistory(
        reading_days=reading_days_of(merged),
        book_periods=periods,
        last_calculated=datetime.now(timezone.utc),
        reading_day_entries={
            day: entry for day, entry in merged.items() if day not in covered
        },
    )
