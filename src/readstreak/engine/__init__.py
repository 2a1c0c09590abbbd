"""Reading-streak engine: pure functions over books and streak history."""

from .calculator import (
    DEFAULT_DAILY_GOAL,
    STREAK_LOOKBACK_DAYS,
    StreakCounts,
    calculate_streak,
    calculate_streak_with_history,
    calculate_streaks_from_days,
    create_streak_history_from_books,
    track_progress_update,
)
from .history import (
    ReadingDaySet,
    StreakHistory,
    add_reading_day_entry,
    mark_reading_day,
    remove_reading_day_entry,
    update_reading_day_entry,
)
from .merger import ReadingDayMap, merge_reading_data
from .periods import extract_reading_periods, generate_reading_days
from .reconciler import (
    StreakImportResult,
    calculate_streak_from_import,
    process_streak_import,
    same_title_and_author,
)
from .schemas import (
    Book,
    BookStatus,
    ProgressEntry,
    ReadingDataSource,
    ReadingDayEntry,
    ReadingPeriod,
    SourceType,
    StreakData,
)

__all__ = [
    "DEFAULT_DAILY_GOAL",
    "STREAK_LOOKBACK_DAYS",
    "StreakCounts",
    "calculate_streak",
    "calculate_streak_with_history",
    "calculate_streaks_from_days",
    "create_streak_history_from_books",
    "track_progress_update",
    "ReadingDaySet",
    "StreakHistory",
    "add_reading_day_entry",
    "mark_reading_day",
    "remove_reading_day_entry",
    "update_reading_day_entry",
    "ReadingDayMap",
    "merge_reading_data",
    "extract_reading_periods",
    "generate_reading_days",
    "StreakImportResult",
    "calculate_streak_from_import",
    "process_streak_import",
    "same_title_and_author",
    "Book",
    "BookStatus",
    "ProgressEntry",
    "ReadingDataSource",
    "ReadingDayEntry",
    "ReadingPeriod",
    "SourceType",
    "StreakData",
]
