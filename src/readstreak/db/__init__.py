"""Database module for local SQLite storage."""

from .models import Book, StreakHistoryRecord
from .sqlite import (
    DEFAULT_USER,
    Database,
    StaleHistoryError,
    StorageError,
    get_db,
    reset_db,
)

__all__ = [
    "Book",
    "StreakHistoryRecord",
    "DEFAULT_USER",
    "Database",
    "StaleHistoryError",
    "StorageError",
    "get_db",
    "reset_db",
]
