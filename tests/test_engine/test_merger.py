"""Tests for reading-day merging."""

from datetime import date, datetime, timezone

import pytest

from readstreak.engine.calculator import create_streak_history_from_books
from readstreak.engine.history import ReadingDaySet, StreakHistory, mark_reading_day
from readstreak.engine.merger import (
    estimate_pages_read,
    get_reading_days_in_range,
    get_reading_statistics,
    merge_reading_data,
    reading_days_of,
    resolve_conflicts,
    round_half_up,
    validate_reading_data,
)
from readstreak.engine.schemas import (
    BookStatus,
    ReadingDataSource,
    ReadingDayEntry,
    ReadingPeriod,
    SourceType,
)


def source(source_type: SourceType, *book_ids: str, hour: int = 0, **metadata) -> ReadingDataSource:
    return ReadingDataSource(
        type=source_type,
        timestamp=datetime(2024, 1, 5, hour, tzinfo=timezone.utc),
        book_ids=list(book_ids),
        metadata=metadata,
    )


class TestEstimatePagesRead:
    """Tests for the pages estimate."""

    def test_with_total_pages(self):
        assert estimate_pages_read(25, 50, 200) == 50

    def test_without_total_pages(self):
        assert estimate_pages_read(10, 30) == 2

    def test_small_change_counts_one_page(self):
        assert estimate_pages_read(0, 3) == 1

    def test_negative_change(self):
        assert estimate_pages_read(50, 25, 200) == 0
        assert estimate_pages_read(50, 25) == 0

    def test_no_change(self):
        assert estimate_pages_read(40, 40) == 0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2
        assert estimate_pages_read(0, 25) == 3


class TestMergeBooks:
    """Tests for book-derived reading days."""

    def test_finished_book_period(self, finished_book, today):
        merged = merge_reading_data(None, [finished_book], today)

        assert list(merged) == [f"2024-01-0{d}" for d in range(1, 6)]
        entry = merged["2024-01-03"]
        assert entry.source_types == {SourceType.BOOK_COMPLETION}
        assert entry.book_ids == ["book-1"]

    def test_overlapping_books_not_double_counted(self, make_book, today):
        books = [
            make_book(id="a", started=date(2024, 1, 1), finished=date(2024, 1, 5)),
            make_book(id="b", title="Emma", started=date(2024, 1, 3), finished=date(2024, 1, 7)),
        ]

        merged = merge_reading_data(None, books, today)

        assert len(merged) == 7
        assert merged["2024-01-04"].book_ids == ["a", "b"]
        assert len(merged["2024-01-04"].sources) == 2

    def test_inverted_book_contributes_nothing(self, make_book, today):
        book = make_book(started=date(2024, 1, 10), finished=date(2024, 1, 5))

        assert merge_reading_data(None, [book], today) == {}

    def test_currently_reading_covers_start_to_last_edit(self, make_book, today):
        book = make_book(
            id="cr",
            started=date(2024, 1, 6),
            status=BookStatus.CURRENTLY_READING,
            progress=30,
            date_modified=datetime(2024, 1, 8, 20, 0),
        )

        merged = merge_reading_data(None, [book], today)

        assert list(merged) == ["2024-01-06", "2024-01-07", "2024-01-08"]
        assert merged["2024-01-07"].source_types == {SourceType.PROGRESS_UPDATE}

    def test_currently_reading_without_edit_runs_to_today(self, make_book, today):
        book = make_book(
            started=date(2024, 1, 9),
            status=BookStatus.CURRENTLY_READING,
            progress=10,
        )

        merged = merge_reading_data(None, [book], today)

        assert list(merged) == ["2024-01-09", "2024-01-10"]

    def test_single_dates(self, make_book, today):
        started_only = make_book(
            id="s", started=date(2024, 1, 2), progress=5, status=BookStatus.WANT_TO_READ,
        )
        finished_only = make_book(id="f", title="Emma", finished=date(2024, 1, 4))

        merged = merge_reading_data(None, [started_only, finished_only], today)

        assert list(merged) == ["2024-01-02", "2024-01-04"]
        assert merged["2024-01-02"].source_types == {SourceType.PROGRESS_UPDATE}
        assert merged["2024-01-04"].source_types == {SourceType.BOOK_COMPLETION}


class TestMergeProgressUpdates:
    """Tests for today's progress sources."""

    def test_book_modified_today(self, make_book, today):
        book = make_book(
            id="cr",
            started=date(2024, 1, 8),
            status=BookStatus.CURRENTLY_READING,
            progress=40,
            total_pages=300,
            date_modified=datetime(2024, 1, 10, 10, 0),
        )

        merged = merge_reading_data(None, [book], today)

        entry = merged["2024-01-10"]
        assert len(entry.sources) == 1
        assert entry.sources[0].type == SourceType.PROGRESS_UPDATE
        assert entry.progress == 30

    def test_estimate_uses_assumed_step(self, make_book, today):
        book = make_book(
            started=date(2024, 1, 1),
            finished=date(2024, 1, 10),
            total_pages=200,
            date_modified=datetime(2024, 1, 10, 9, 0),
        )

        merged = merge_reading_data(None, [book], today)

        assert merged["2024-01-10"].progress == 20
        assert merged["2024-01-10"].source_types == {
            SourceType.BOOK_COMPLETION,
            SourceType.PROGRESS_UPDATE,
        }

    def test_book_modified_yesterday_has_no_progress(self, make_book, today):
        book = make_book(
            started=date(2024, 1, 1),
            finished=date(2024, 1, 9),
            date_modified=datetime(2024, 1, 9, 9, 0),
        )

        merged = merge_reading_data(None, [book], today)

        assert "2024-01-10" not in merged
        assert all(entry.progress == 0 for entry in merged.values())

    def test_zero_progress_ignored(self, make_book, today):
        book = make_book(date_modified=datetime(2024, 1, 10, 9, 0))

        assert merge_reading_data(None, [book], today) == {}

    def test_edit_counts_on_local_day(self, make_book, local_time_ahead_of_utc):
        book = make_book(
            id="cr",
            started=date(2024, 1, 9),
            status=BookStatus.CURRENTLY_READING,
            progress=40,
            total_pages=300,
            date_modified=datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc),
        )

        merged = merge_reading_data(None, [book], date(2024, 1, 11))

        assert list(merged) == ["2024-01-09", "2024-01-10", "2024-01-11"]
        assert merged["2024-01-11"].progress == 30



class TestMergeHistory:
    """Tests for history-derived reading days."""

    def test_plain_history_day_is_manual(self, today):
        history = StreakHistory(reading_days=ReadingDaySet(["2024-01-07"]))

        merged = merge_reading_data(history, [], today)

        assert merged["2024-01-07"].source_types == {SourceType.MANUAL}

    def test_history_day_inside_stored_period(self, today):
        history = StreakHistory(
            reading_days=ReadingDaySet(["2024-01-02"]),
            book_periods=[ReadingPeriod(
                book_id="old", start_date=date(2024, 1, 1), end_date=date(2024, 1, 3),
            )],
        )

        entry = merge_reading_data(history, [], today)["2024-01-02"]

        assert entry.source_types == {SourceType.BOOK_COMPLETION}
        assert entry.book_ids == ["old"]

    def test_explicit_entry_keeps_its_sources(self, today):
        history = mark_reading_day(StreakHistory(), date(2024, 1, 8), ["x"], notes="Beach")

        entry = merge_reading_data(history, [], today)["2024-01-08"]

        assert entry.source_types == {SourceType.MANUAL}
        assert entry.book_ids == ["x"]
        assert entry.notes == "Beach"

    def test_history_and_books_union(self, finished_book, today):
        history = mark_reading_day(StreakHistory(), date(2024, 1, 3))

        merged = merge_reading_data(history, [finished_book], today)

        assert len(merged) == 5
        assert merged["2024-01-03"].source_types == {
            SourceType.MANUAL,
            SourceType.BOOK_COMPLETION,
        }

    def test_remerge_is_idempotent(self, make_book, today):
        books = [
            make_book(id="a", started=date(2024, 1, 1), finished=date(2024, 1, 5)),
            make_book(id="b", title="Emma", started=date(2024, 1, 8), finished=date(2024, 1, 9)),
        ]
        history = create_streak_history_from_books(books, today)

        merged = merge_reading_data(history, books, today)

        assert reading_days_of(merged) == history.reading_days
        assert merge_reading_data(history, books, today) == merged

    def test_every_entry_has_sources(self, finished_book, today):
        history = StreakHistory(reading_days=ReadingDaySet(["2023-12-25"]))

        merged = merge_reading_data(history, [finished_book], today)

        assert all(entry.sources for entry in merged.values())
        assert list(merged) == sorted(merged)


class TestResolveConflicts:
    """Tests for unioning entries of one date."""

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            resolve_conflicts([])

    def test_mismatched_dates_raise(self):
        with pytest.raises(ValueError):
            resolve_conflicts([
                ReadingDayEntry(date="2024-01-01"),
                ReadingDayEntry(date="2024-01-02"),
            ])

    def test_single_entry_returned(self):
        entry = ReadingDayEntry(date="2024-01-01", sources=[source(SourceType.MANUAL)])

        assert resolve_conflicts([entry]) is entry

    def test_union(self):
        merged = resolve_conflicts([
            ReadingDayEntry(date="2024-01-05", sources=[source(SourceType.MANUAL)], notes="a"),
            ReadingDayEntry(
                date="2024-01-05",
                sources=[source(SourceType.BOOK_COMPLETION, "b1")],
                book_ids=["b1"],
                notes="b",
            ),
            ReadingDayEntry(date="2024-01-05", sources=[source(SourceType.MANUAL)], notes="a"),
        ])

        assert len(merged.sources) == 2
        assert merged.book_ids == ["b1"]
        assert merged.notes == "a; b"

    def test_newest_duplicate_wins(self):
        merged = resolve_conflicts([
            ReadingDayEntry(
                date="2024-01-05",
                sources=[source(SourceType.PROGRESS_UPDATE, "b1", hour=8, progress=10)],
            ),
            ReadingDayEntry(
                date="2024-01-05",
                sources=[source(SourceType.PROGRESS_UPDATE, "b1", hour=20, progress=25)],
            ),
        ])

        assert len(merged.sources) == 1
        assert merged.progress == 25


class TestQueries:
    """Tests for range, statistics and validation queries."""

    @pytest.fixture
    def merged(self, finished_book, today):
        history = mark_reading_day(StreakHistory(), date(2024, 1, 8))
        return merge_reading_data(history, [finished_book], today)

    def test_range(self, merged):
        entries = get_reading_days_in_range("2024-01-04", "2024-01-08", merged)

        assert [e.date for e in entries] == ["2024-01-04", "2024-01-05", "2024-01-08"]

    def test_range_rejects_bad_dates(self, merged):
        with pytest.raises(ValueError, match="Invalid date format"):
            get_reading_days_in_range("2024-1-4", "2024-01-08", merged)

    def test_range_rejects_inverted(self, merged):
        with pytest.raises(ValueError, match="Start date"):
            get_reading_days_in_range("2024-01-08", "2024-01-04", merged)

    def test_statistics(self, merged):
        stats = get_reading_statistics(merged)

        assert stats.total_reading_days == 6
        assert stats.total_books == 1
        assert stats.source_breakdown == {
            "manual": 1,
            "book_completion": 5,
            "progress_update": 0,
        }
        assert stats.earliest == "2024-01-01"
        assert stats.latest == "2024-01-08"

    def test_statistics_empty(self):
        stats = get_reading_statistics({})

        assert stats.total_reading_days == 0
        assert stats.earliest is None

    def test_validate_clean(self, merged, today):
        result = validate_reading_data(merged, today)

        assert result.is_valid
        assert result.warnings == []

    def test_validate_flags_problems(self, today):
        data = {
            "2024-01-20": ReadingDayEntry(date="2024-01-20", sources=[source(SourceType.MANUAL)]),
            "2020-01-01": ReadingDayEntry(date="2020-01-01", sources=[source(SourceType.MANUAL)]),
            "2024-01-02": ReadingDayEntry(date="2024-01-02"),
            "2024-01-03": ReadingDayEntry(date="2024-01-04", sources=[source(SourceType.MANUAL)]),
        }

        result = validate_reading_data(data, today)

        assert not result.is_valid
        assert "No sources for date: 2024-01-02" in result.errors
        assert any("stored under 2024-01-03" in e for e in result.errors)
        assert "Future date detected: 2024-01-20" in result.warnings
        assert "Very old reading date: 2020-01-01" in result.warnings
