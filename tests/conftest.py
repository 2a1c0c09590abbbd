"""Pytest configuration and shared fixtures.

This module provides fixtures for testing readstreak, including an
in-memory database, a file-backed database for the CLI, and sample books.
"""

import os
import tempfile
import time
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Generator

import pytest

from readstreak.config import reset_config
from readstreak.db.sqlite import Database, reset_db
from readstreak.engine.schemas import Book, BookStatus


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory test database."""
    reset_db()
    reset_config()

    database = Database(":memory:")
    database.create_tables()
    yield database

    reset_db()
    reset_config()


@pytest.fixture(scope="function")
def env_db(temp_db_path: Path) -> Generator[Path, None, None]:
    """Point the global database at a temporary file."""
    reset_db()
    reset_config()
    os.environ["READSTREAK_DB_PATH"] = str(temp_db_path)

    yield temp_db_path

    reset_db()
    reset_config()
    if "READSTREAK_DB_PATH" in os.environ:
        del os.environ["READSTREAK_DB_PATH"]


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def today() -> date:
    """Fixed reference day for streak calculations."""
    return date(2024, 1, 10)


@pytest.fixture
def noon(today: date) -> datetime:
    """Midday on the reference day, in local time."""
    return datetime(today.year, today.month, today.day, 12, 0).astimezone()


@pytest.fixture
def local_time_ahead_of_utc() -> Generator[None, None, None]:
    """Run with the local clock 14 hours ahead of UTC."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    previous = os.environ.get("TZ")
    os.environ["TZ"] = "UTC-14"
    time.tzset()

    yield

    if previous is None:
        del os.environ["TZ"]
    else:
        os.environ["TZ"] = previous
    time.tzset()



@pytest.fixture
def make_book() -> Callable[..., Book]:
    """Factory for books read between two dates."""

    def _make(
        title: str = "Dune",
        author: str = "Frank Herbert",
        started: date = None,
        finished: date = None,
        **kwargs,
    ) -> Book:
        values = {
            "title": title,
            "author": author,
            "date_started": started,
            "date_finished": finished,
        }
        if finished is not None:
            values.setdefault("status", BookStatus.FINISHED)
            values.setdefault("progress", 100)
        values.update(kwargs)
        return Book(**values)

    return _make


@pytest.fixture
def finished_book(make_book) -> Book:
    """A book read from Jan 1 to Jan 5, 2024."""
    return make_book(
        id="book-1",
        started=date(2024, 1, 1),
        finished=date(2024, 1, 5),
        total_pages=412,
    )
