"""Streak manager: loads books and history, runs the engine, persists results."""

import logging
from calendar import monthrange
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from ..config import get_config
from ..db.sqlite import Database, get_db
from ..engine.calculator import calculate_streak_with_history, track_progress_update
from ..engine.dates import format_date_iso, local_day, to_date
from ..engine.display import primary_source
from ..engine.history import StreakHistory, manual_entry
from ..engine.merger import (
    ReadingDayMap,
    ReadingStatistics,
    get_reading_days_in_range,
    get_reading_statistics,
    merge_reading_data,
    reading_days_of,
    round_half_up,
)
from ..engine.periods import extract_reading_periods, generate_reading_days
from ..engine.reconciler import StreakImportResult, process_streak_import
from ..engine.schemas import (
    Book,
    BookStatus,
    ProgressEntry,
    ReadingDataSource,
    ReadingDayEntry,
    SourceType,
    StreakData,
)
from .schemas import StreakCalendar, StreakStatus

logger = logging.getLogger(__name__)


class StreakManager:
    """Manages reading streaks on top of stored books and history."""

    def __init__(
        self,
        db: Optional[Database] = None,
        user_id: Optional[str] = None,
        daily_goal: Optional[float] = None,
    ):
        """Initialize streak manager.

        Args:
            db: Database instance
            user_id: History owner (default: configured user)
            daily_goal: Pages per day (default: configured goal)
        """
        config = get_config()
        self.db = db or get_db(str(config.db_path))
        self.user_id = user_id or config.user_id
        self.daily_goal = config.daily_goal if daily_goal is None else daily_goal

    def _load(self) -> tuple[list[Book], Optional[StreakHistory]]:
        return self.db.get_books(), self.db.get_streak_history(self.user_id)

    # -------------------------------------------------------------------------
    # Streaks
    # -------------------------------------------------------------------------

    def get_reading_data(self, today: Optional[date] = None) -> ReadingDayMap:
        """Merged reading-day map for the stored books and history."""
        books, history = self._load()
        return merge_reading_data(history, books, today)

    def get_streak(self, today: Optional[date] = None) -> StreakData:
        """Current streak figures."""
        books, history = self._load()
        return calculate_streak_with_history(books, history, self.daily_goal, today)

    def get_status(self, today: Optional[date] = None) -> StreakStatus:
        """Whether the streak is alive, waiting on today, or over."""
        streak = self.get_streak(today)
        if streak.has_read_today:
            return StreakStatus.ACTIVE
        if streak.current_streak > 0:
            return StreakStatus.AT_RISK
        return StreakStatus.ENDED

    # -------------------------------------------------------------------------
    # Reading Days
    # -------------------------------------------------------------------------

    def mark_read(
        self,
        day: Any = None,
        book_ids: Optional[list[str]] = None,
        notes: Optional[str] = None,
    ) -> ReadingDayEntry:
        """Mark a day as read.

        Args:
            day: Date or ISO string (default: today)
            book_ids: Books read that day
            notes: Optional notes

        Returns:
            The stored entry for that day

        Raises:
            ValueError: If a book id is unknown or the date is malformed
        """
        day = to_date(day) if day is not None else date.today()
        for book_id in book_ids or []:
            if self.db.get_book(book_id) is None:
                raise ValueError(f"Book not found: {book_id}")

        history = self.db.add_reading_day_entry(
            manual_entry(day, book_ids, notes), self.user_id
        )
        logger.info("Marked %s as read", day)
        return history.reading_day_entries[format_date_iso(day)]

    def unmark_day(self, day: Any) -> bool:
        """Remove a day from the stored history.

        Days implied by book dates are recomputed from the books and stay.

        Returns:
            True if the day was in the history
        """
        day = format_date_iso(to_date(day))
        history = self.db.get_streak_history(self.user_id)
        if history is None or day not in history.reading_days:
            return False

        self.db.remove_reading_day_entry(day, self.user_id)
        logger.info("Removed %s from reading history", day)
        return True

    def annotate_day(
        self,
        day: Any,
        notes: Optional[str] = None,
        book_ids: Optional[list[str]] = None,
    ) -> ReadingDayEntry:
        """Set notes or book ids on a recorded day.

        Raises:
            ValueError: If the day is not in the stored history
        """
        day = format_date_iso(to_date(day))
        history = self.db.update_reading_day_entry(
            day, {"notes": notes, "book_ids": book_ids}, self.user_id
        )
        return history.reading_day_entries[day]

    def get_day(self, day: Any, today: Optional[date] = None) -> Optional[ReadingDayEntry]:
        """Merged entry for one day, or None if it was not a reading day."""
        return self.get_reading_data(today).get(format_date_iso(to_date(day)))

    def get_reading_days(
        self,
        start_date: Any,
        end_date: Any,
        today: Optional[date] = None,
    ) -> list[ReadingDayEntry]:
        """Merged entries between two dates inclusive."""
        return get_reading_days_in_range(
            format_date_iso(to_date(start_date)),
            format_date_iso(to_date(end_date)),
            self.get_reading_data(today),
        )

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    def add_book(self, book: Book) -> Book:
        """Store a new book."""
        created = self.db.create_book(book)
        logger.info("Added book %s (%s)", created.id, created.title)
        return created

    def update_progress(
        self,
        book_id: str,
        new_progress: float,
        now: Optional[datetime] = None,
    ) -> ProgressEntry:
        """Change a book's progress and credit the pages to today.

        Starting a book fills in its start date and moves it to currently
        reading; reaching 100% finishes it.

        Raises:
            ValueError: If the book is unknown or progress is outside 0-100
        """
        book = self.db.get_book(book_id)
        if book is None:
            raise ValueError(f"Book not found: {book_id}")
        if not 0 <= new_progress <= 100:
            raise ValueError(f"Progress must be between 0 and 100, got {new_progress}")

        now = now or datetime.now(timezone.utc)
        today = local_day(now)
        progress = track_progress_update(book, book.progress, new_progress, now)

        changes: dict[str, Any] = {"progress": new_progress, "date_modified": now}
        if book.total_pages:
            changes["current_page"] = round_half_up(new_progress / 100 * book.total_pages)
        if new_progress > 0 and not book.date_started:
            changes["date_started"] = today
        if new_progress >= 100:
            changes["status"] = BookStatus.FINISHED
            if not book.date_finished:
                changes["date_finished"] = today
        elif new_progress > 0 and book.status == BookStatus.WANT_TO_READ:
            changes["status"] = BookStatus.CURRENTLY_READING

        self.db.update_book(book_id, **changes)

        if progress.pages_read > 0:
            self._record_pages(book_id, today, progress.pages_read, now)

        logger.info(
            "Progress of %s: %g%% -> %g%% (%d pages)",
            book_id, book.progress, new_progress, progress.pages_read,
        )
        return progress

    def _record_pages(self, book_id: str, day: date, pages: int, now: datetime) -> None:
        """Add pages to the book's progress source for the day."""
        day_iso = format_date_iso(day)
        previous = 0.0
        history = self.db.get_streak_history(self.user_id)
        existing = history.reading_day_entries.get(day_iso) if history else None
        if existing is not None:
            previous = sum(
                s.progress for s in existing.sources
                if s.type == SourceType.PROGRESS_UPDATE and s.book_ids == [book_id]
            )

        entry = ReadingDayEntry(
            date=day_iso,
            sources=[ReadingDataSource(
                type=SourceType.PROGRESS_UPDATE,
                timestamp=now,
                book_ids=[book_id],
                metadata={"progress": previous + pages},
            )],
            book_ids=[book_id],
        )
        self.db.add_reading_day_entry(entry, self.user_id)

    # -------------------------------------------------------------------------
    # Import & Rebuild
    # -------------------------------------------------------------------------

    def import_books(
        self,
        books: list[Book],
        today: Optional[date] = None,
    ) -> StreakImportResult:
        """Fold imported books into the library and the streak history.

        Books that match an existing one by title and author are not
        stored again.
        """
        existing, history = self._load()
        result = process_streak_import(books, existing, history, self.daily_goal, today)

        result.new_books, result.updated_history = self.db.apply_import(
            result.new_books, result.updated_history, self.user_id
        )
        return result

    def rebuild_history(self) -> StreakHistory:
        """Regenerate the history from the books, keeping explicit day entries.

        Only days inside a book's reading period are stored. Days known
        from a book still being read, or from a single start or finish
        date, are derived again from the book on every merge.
        """
        books, existing = self._load()
        periods = extract_reading_periods(books)
        rebuilt = StreakHistory(
            reading_days=generate_reading_days(periods),
            book_periods=periods,
            last_calculated=datetime.now(timezone.utc),
        )

        if existing is not None:
            rebuilt = replace(
                rebuilt,
                reading_days=rebuilt.reading_days.union(existing.reading_day_entries),
                reading_day_entries=dict(existing.reading_day_entries),
                version=existing.version,
            )

        saved = self.db.save_streak_history(rebuilt, self.user_id)
        logger.info("Rebuilt history: %d reading days", len(saved.reading_days))
        return saved

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def get_statistics(self, today: Optional[date] = None) -> ReadingStatistics:
        """Reading-day totals and source breakdown."""
        return get_reading_statistics(self.get_reading_data(today))

    def get_calendar(
        self,
        year: int,
        month: int,
        today: Optional[date] = None,
    ) -> StreakCalendar:
        """Get calendar view of reading activity.

        Args:
            year: Year
            month: Month (1-12)
            today: Reference day for today's sources

        Returns:
            StreakCalendar with activity data
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")

        _, days_in_month = monthrange(year, month)
        reading_data = self.get_reading_data(today)
        reading_days = reading_days_of(reading_data)

        # Streak carried into the month from the days before it
        run = 0
        check_date = date(year, month, 1) - timedelta(days=1)
        while check_date in reading_days:
            run += 1
            check_date -= timedelta(days=1)

        days = {}
        streak_days = {}
        sources = {}
        total_pages = 0.0

        for day in range(1, days_in_month + 1):
            day_iso = date(year, month, day).isoformat()
            has_reading = day_iso in reading_days
            days[day] = has_reading

            if has_reading:
                entry = reading_data[day_iso]
                sources[day] = primary_source(entry).value
                total_pages += entry.progress
                run += 1
            else:
                run = 0
            streak_days[day] = run

        return StreakCalendar(
            year=year,
            month=month,
            days=days,
            streak_days=streak_days,
            sources=sources,
            total_reading_days=sum(days.values()),
            total_pages=total_pages,
        )
