"""SQLite database operations.

Handles database connection, session management, book CRUD and the
per-user streak history snapshot.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..engine import history as history_ops
from ..engine import schemas
from ..engine.history import StreakHistory
from .models import Base, Book, StreakHistoryRecord

logger = logging.getLogger(__name__)

DEFAULT_USER = "default"


class StorageError(Exception):
    """Storage-specific error."""

    pass


class StaleHistoryError(StorageError):
    """The stored history changed since it was read."""

    def __init__(self, user_id: str, expected: int, actual: int):
        super().__init__(
            f"Streak history for {user_id!r} is at version {actual}, expected {expected}"
        )
        self.user_id = user_id
        self.expected = expected
        self.actual = actual


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     READSTREAK_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "READSTREAK_DB_PATH",
                str(Path.home() / ".readstreak" / "readstreak.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def _add_book(self, s: Session, book: schemas.Book) -> schemas.Book:
        db_book = Book()
        db_book.apply(book.model_dump(exclude_none=True))
        s.add(db_book)
        s.flush()
        logger.debug("Created book %s (%s)", db_book.id, db_book.title)
        return db_book.to_schema()

    def create_book(self, book: schemas.Book) -> schemas.Book:
        """Create a new book record, assigning an id if it has none."""
        with self.get_session() as s:
            return self._add_book(s, book)

    def get_book(self, book_id: str) -> Optional[schemas.Book]:
        """Get a book by ID."""
        with self.get_session() as s:
            book = s.get(Book, book_id)
            return book.to_schema() if book else None

    def get_books(self) -> list[schemas.Book]:
        """Get all books."""
        with self.get_session() as s:
            stmt = select(Book).order_by(Book.title)
            return [book.to_schema() for book in s.execute(stmt).scalars().all()]

    def update_book(self, book_id: str, **changes: Any) -> Optional[schemas.Book]:
        """Update fields of a book record.

        Returns:
            Updated book, or None if it does not exist
        """
        with self.get_session() as s:
            book = s.get(Book, book_id)
            if not book:
                return None

            # Validate through the schema before touching the row
            updated = book.to_schema().model_copy(update=changes)
            schemas.Book.model_validate(updated.model_dump())

            book.apply(changes)
            s.flush()
            return book.to_schema()

    def delete_book(self, book_id: str) -> bool:
        """Delete a book record."""
        with self.get_session() as s:
            book = s.get(Book, book_id)
            if not book:
                return False
            s.delete(book)
            return True

    # ========================================================================
    # Streak History Operations
    # ========================================================================

    def _get_record(self, s: Session, user_id: str) -> Optional[StreakHistoryRecord]:
        stmt = select(StreakHistoryRecord).where(StreakHistoryRecord.user_id == user_id)
        return s.execute(stmt).scalar_one_or_none()

    def get_streak_history(self, user_id: str = DEFAULT_USER) -> Optional[StreakHistory]:
        """Load a user's streak history, or None if none is stored."""
        with self.get_session() as s:
            record = self._get_record(s, user_id)
            return record.get_history() if record else None

    def save_streak_history(
        self,
        history: StreakHistory,
        user_id: str = DEFAULT_USER,
        force: bool = False,
    ) -> StreakHistory:
        """Persist a history and bump its version.

        ``history.version`` must match the stored version unless ``force``
        is set, so two writers that read the same snapshot cannot both win.

        Raises:
            StaleHistoryError: If the stored version moved on
        """
        with self.get_session() as s:
            return self._save(s, history, user_id, force)

    def _save(
        self,
        s: Session,
        history: StreakHistory,
        user_id: str,
        force: bool = False,
    ) -> StreakHistory:
        record = self._get_record(s, user_id)
        if record is None:
            record = StreakHistoryRecord(user_id=user_id, version=0)
            s.add(record)
        elif not force and record.version != history.version:
            raise StaleHistoryError(user_id, history.version, record.version)

        record.version = (record.version or 0) + 1
        record.set_history(history)
        s.flush()
        logger.debug(
            "Saved streak history for %s: %d days, version %d",
            user_id, len(history.reading_days), record.version,
        )
        return replace(history, version=record.version)

    def apply_import(
        self,
        books: list[schemas.Book],
        history: StreakHistory,
        user_id: str = DEFAULT_USER,
    ) -> tuple[list[schemas.Book], StreakHistory]:
        """Store imported books and the updated history in one transaction.

        Nothing is written if any book or the history cannot be stored.

        Returns:
            The created books (with ids) and the saved history

        Raises:
            StorageError: If a book conflicts with a stored one
            StaleHistoryError: If the stored history moved on
        """
        try:
            with self.get_session() as s:
                created = [self._add_book(s, book) for book in books]
                saved = self._save(s, history, user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Import could not be stored: {e}") from e

        logger.info("Imported %d books for %s", len(created), user_id)
        return created, saved

    def _modify_history(self, user_id: str, change) -> StreakHistory:
        """Read-modify-write the stored history inside one session."""
        with self.get_session() as s:
            record = self._get_record(s, user_id)
            current = record.get_history() if record else StreakHistory()
            return self._save(s, change(current), user_id)

    def add_reading_day_entry(
        self,
        entry: schemas.ReadingDayEntry,
        user_id: str = DEFAULT_USER,
    ) -> StreakHistory:
        """Add (or merge into) a reading day entry."""
        return self._modify_history(
            user_id, lambda h: history_ops.add_reading_day_entry(h, entry)
        )

    def remove_reading_day_entry(self, day: date, user_id: str = DEFAULT_USER) -> StreakHistory:
        """Remove a single day from the history."""
        return self._modify_history(
            user_id, lambda h: history_ops.remove_reading_day_entry(h, day)
        )

    def update_reading_day_entry(
        self,
        day: date,
        patch: dict,
        user_id: str = DEFAULT_USER,
    ) -> StreakHistory:
        """Patch notes or book ids of a day.

        Raises:
            ValueError: If the day is not a recorded reading day
        """
        return self._modify_history(
            user_id,
            lambda h: history_ops.update_reading_day_entry(
                h, day, notes=patch.get("notes"), book_ids=patch.get("book_ids"),
            ),
        )


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
