"""Tests for StreakManager."""

from datetime import date, datetime, timedelta, timezone

import pytest

from readstreak.db.sqlite import Database, StorageError
from readstreak.engine.schemas import Book, BookStatus, SourceType
from readstreak.streaks.manager import StreakManager
from readstreak.streaks.schemas import StreakStatus


@pytest.fixture
def manager(db: Database) -> StreakManager:
    """Create a StreakManager with test database."""
    return StreakManager(db, user_id="tester", daily_goal=30)


class TestStreakQueries:
    """Tests for streak figures and status."""

    def test_empty_library(self, manager, today):
        streak = manager.get_streak(today)

        assert streak.current_streak == 0
        assert streak.longest_streak == 0
        assert streak.daily_goal == 30

    def test_defaults_from_config(self, db, monkeypatch):
        monkeypatch.setenv("READSTREAK_DAILY_GOAL", "45")
        monkeypatch.setenv("READSTREAK_USER", "someone")

        manager = StreakManager(db)

        assert manager.daily_goal == 45
        assert manager.user_id == "someone"

    def test_status_active(self, manager, today):
        manager.mark_read(today)

        assert manager.get_status(today) == StreakStatus.ACTIVE

    def test_status_at_risk(self, manager, today):
        manager.mark_read(today - timedelta(days=1))

        assert manager.get_status(today) == StreakStatus.AT_RISK

    def test_status_ended(self, manager, today):
        manager.mark_read(today - timedelta(days=3))

        assert manager.get_status(today) == StreakStatus.ENDED

    def test_books_and_marks_combine(self, manager, make_book, today):
        manager.add_book(make_book(started=date(2024, 1, 1), finished=date(2024, 1, 7)))
        manager.mark_read("2024-01-08")
        manager.mark_read("2024-01-09")

        streak = manager.get_streak(today)

        assert streak.current_streak == 9
        assert streak.last_read_date == date(2024, 1, 9)
        assert not streak.has_read_today


class TestReadingDays:
    """Tests for marking and unmarking days."""

    def test_mark_read_returns_entry(self, manager, today):
        book = manager.add_book(Book(title="Emma"))

        entry = manager.mark_read(today, book_ids=[book.id], notes="Lunch break")

        assert entry.date == "2024-01-10"
        assert entry.book_ids == [book.id]
        assert entry.notes == "Lunch break"
        assert entry.source_types == {SourceType.MANUAL}

    def test_mark_read_unknown_book(self, manager, today):
        with pytest.raises(ValueError, match="Book not found"):
            manager.mark_read(today, book_ids=["missing"])

    def test_mark_read_bad_date(self, manager):
        with pytest.raises(ValueError):
            manager.mark_read("2024-13-45")

    def test_mark_read_defaults_to_today(self, manager):
        entry = manager.mark_read()

        assert entry.date == date.today().isoformat()

    def test_unmark_day(self, manager, today):
        manager.mark_read(today)

        assert manager.unmark_day(today) is True
        assert manager.get_streak(today).current_streak == 0
        assert manager.unmark_day(today) is False

    def test_unmark_book_day_is_recomputed(self, manager, finished_book, today):
        manager.add_book(finished_book)
        manager.rebuild_history()

        assert manager.unmark_day("2024-01-03") is True
        assert manager.get_day("2024-01-03", today) is not None

    def test_annotate_day(self, manager, today):
        manager.mark_read(today)

        entry = manager.annotate_day(today, notes="Finished part two")

        assert entry.notes == "Finished part two"
        assert manager.get_day(today, today).notes == "Finished part two"

    def test_annotate_unknown_day(self, manager, today):
        with pytest.raises(ValueError):
            manager.annotate_day(today, notes="x")

    def test_get_day(self, manager, finished_book, today):
        manager.add_book(finished_book)
        manager.mark_read("2024-01-02")

        entry = manager.get_day("2024-01-02", today)

        assert entry.source_types == {SourceType.MANUAL, SourceType.BOOK_COMPLETION}
        assert manager.get_day("2024-01-06", today) is None

    def test_get_reading_days(self, manager, finished_book, today):
        manager.add_book(finished_book)

        entries = manager.get_reading_days("2024-01-04", date(2024, 1, 10), today)

        assert [e.date for e in entries] == ["2024-01-04", "2024-01-05"]


class TestProgressUpdates:
    """Tests for progress tracking through the service."""

    @pytest.fixture
    def book(self, manager):
        return manager.add_book(Book(title="Middlemarch", author="George Eliot", total_pages=200))

    def test_first_progress_starts_book(self, manager, book, noon, today):
        entry = manager.update_progress(book.id, 25, now=noon)

        stored = manager.db.get_book(book.id)
        assert entry.pages_read == 50
        assert stored.status == BookStatus.CURRENTLY_READING
        assert stored.date_started == today
        assert stored.current_page == 50
        assert stored.date_modified == noon

    def test_pages_count_toward_today(self, manager, book, noon, today):
        manager.update_progress(book.id, 25, now=noon)

        streak = manager.get_streak(today)

        assert streak.today_progress == 50
        assert streak.has_read_today
        assert streak.current_streak == 1

    def test_pages_accumulate_over_the_day(self, manager, book, noon, today):
        manager.update_progress(book.id, 25, now=noon)
        manager.update_progress(book.id, 40, now=noon + timedelta(hours=2))

        assert manager.get_streak(today).today_progress == 80

    def test_finishing_book(self, manager, book, noon, today):
        manager.update_progress(book.id, 100, now=noon)

        stored = manager.db.get_book(book.id)
        assert stored.status == BookStatus.FINISHED
        assert stored.date_finished == today
        assert stored.current_page == 200

    def test_going_backwards_reads_no_pages(self, manager, book, noon, today):
        manager.update_progress(book.id, 50, now=noon - timedelta(days=1))

        entry = manager.update_progress(book.id, 30, now=noon)

        assert entry.pages_read == 0
        history = manager.db.get_streak_history("tester")
        assert "2024-01-10" not in history.reading_day_entries

    def test_unknown_book(self, manager):
        with pytest.raises(ValueError, match="Book not found"):
            manager.update_progress("missing", 10)

    def test_progress_out_of_range(self, manager, book):
        with pytest.raises(ValueError, match="between 0 and 100"):
            manager.update_progress(book.id, 120)

    def test_edit_is_filed_on_local_day(self, manager, book, local_time_ahead_of_utc):
        now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

        manager.update_progress(book.id, 25, now=now)

        stored = manager.db.get_book(book.id)
        streak = manager.get_streak(date(2024, 1, 11))
        assert stored.date_started == date(2024, 1, 11)
        assert streak.has_read_today
        assert streak.today_progress == 50

    def test_edit_without_time_counts_today(self, manager, book, local_time_ahead_of_utc):
        manager.update_progress(book.id, 100)

        stored = manager.db.get_book(book.id)
        streak = manager.get_streak()
        assert stored.date_finished == date.today()
        assert streak.has_read_today
        assert streak.today_progress == 200



class TestImportAndRebuild:
    """Tests for imports and rebuilding history."""

    @pytest.fixture
    def batch(self, make_book):
        return [
            make_book(title="A", started=date(2024, 1, 1), finished=date(2024, 1, 5)),
            make_book(title="B", started=date(2024, 1, 6), finished=date(2024, 1, 10)),
        ]

    def test_import_books(self, manager, batch, today):
        result = manager.import_books(batch, today)

        assert result.periods_processed == 2
        assert result.days_added == 10
        assert result.new_current_streak == 10
        assert len(manager.db.get_books()) == 2
        assert result.updated_history.version == 1
        assert manager.get_streak(today).current_streak == 10

    def test_reimport_adds_nothing(self, manager, batch, today):
        manager.import_books(batch, today)
        result = manager.import_books(batch, today)

        assert result.new_books == []
        assert result.current_streak_change == 0
        assert len(manager.db.get_books()) == 2
        assert len(manager.db.get_streak_history("tester").book_periods) == 2

    def test_import_nothing_usable(self, manager, make_book, today):
        result = manager.import_books([make_book(title="Undated")], today)

        assert result.found_nothing
        assert manager.get_streak(today).current_streak == 0

    def test_import_returns_stored_books(self, manager, batch, today):
        result = manager.import_books(batch, today)

        assert all(book.id for book in result.new_books)
        assert {book.id for book in result.new_books} == {b.id for b in manager.db.get_books()}

    def test_conflicting_import_writes_nothing(self, manager, make_book, today):
        manager.add_book(make_book(id="b1", title="Dune"))
        batch = [
            make_book(id="n1", title="Emma", started=date(2024, 1, 1), finished=date(2024, 1, 2)),
            make_book(id="b1", title="Other", started=date(2024, 1, 3), finished=date(2024, 1, 4)),
        ]

        with pytest.raises(StorageError):
            manager.import_books(batch, today)

        assert [b.id for b in manager.db.get_books()] == ["b1"]
        assert manager.db.get_streak_history("tester") is None


    def test_rebuild_keeps_manual_entries(self, manager, finished_book):
        manager.add_book(finished_book)
        manager.mark_read("2024-01-09", notes="Audiobook")

        history = manager.rebuild_history()

        assert history.reading_days.to_list() == [
            "2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05", "2024-01-09",
        ]
        assert history.reading_day_entries["2024-01-09"].notes == "Audiobook"
        assert len(history.book_periods) == 1

    def test_rebuild_drops_orphaned_days(self, manager, finished_book, make_book, today):
        manager.import_books([make_book(title="Gone", started=date(2023, 12, 1),
                                        finished=date(2023, 12, 3))], today)
        for book in manager.db.get_books():
            manager.db.delete_book(book.id)
        manager.add_book(finished_book)

        history = manager.rebuild_history()

        assert "2023-12-01" not in history.reading_days
        assert len(history.reading_days) == 5

    def test_rebuild_stores_only_period_days(self, manager, make_book, today):
        manager.add_book(make_book(
            title="Emma",
            started=date(2024, 1, 8),
            status=BookStatus.CURRENTLY_READING,
            progress=20,
        ))
        manager.add_book(make_book(title="Persuasion", finished=date(2024, 1, 3)))

        history = manager.rebuild_history()

        assert len(history.reading_days) == 0
        assert manager.get_day("2024-01-08", today).source_types == {SourceType.PROGRESS_UPDATE}
        assert manager.get_day("2024-01-03", today).source_types == {SourceType.BOOK_COMPLETION}



class TestCalendarAndStatistics:
    """Tests for the calendar view and statistics."""

    def test_calendar(self, manager, finished_book, today):
        manager.add_book(finished_book)
        manager.mark_read("2024-01-08")

        cal = manager.get_calendar(2024, 1, today)

        assert cal.total_reading_days == 6
        assert cal.days[1] and cal.days[5] and cal.days[8]
        assert not cal.days[6]
        assert cal.streak_days[5] == 5
        assert cal.streak_days[6] == 0
        assert cal.streak_days[8] == 1
        assert cal.sources[3] == SourceType.BOOK_COMPLETION.value
        assert cal.sources[8] == SourceType.MANUAL.value
        assert len(cal.days) == 31

    def test_calendar_carries_streak_across_months(self, manager, make_book, today):
        manager.add_book(make_book(started=date(2023, 12, 30), finished=date(2024, 1, 2)))

        cal = manager.get_calendar(2024, 1, today)

        assert cal.streak_days[1] == 3
        assert cal.streak_days[2] == 4

    def test_calendar_invalid_month(self, manager):
        with pytest.raises(ValueError):
            manager.get_calendar(2024, 13)

    def test_statistics(self, manager, finished_book, today):
        manager.add_book(finished_book)
        manager.mark_read("2024-01-08")

        stats = manager.get_statistics(today)

        assert stats.total_reading_days == 6
        assert stats.source_breakdown["manual"] == 1
        assert stats.source_breakdown["book_completion"] == 5
