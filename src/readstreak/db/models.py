"""SQLAlchemy ORM models for local SQLite storage.

Tables:
- books: Book records the streak engine reads
- streak_histories: One serialized StreakHistory per user
"""

import json
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..engine import schemas
from ..engine.history import StreakHistory


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, default="", index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=schemas.BookStatus.WANT_TO_READ.value, index=True
    )
    progress: Mapped[float] = mapped_column(Float, default=0)
    total_pages: Mapped[Optional[int]] = mapped_column(Integer)
    current_page: Mapped[Optional[int]] = mapped_column(Integer)

    # Dates
    date_added: Mapped[Optional[str]] = mapped_column(String(32))  # ISO datetime
    date_modified: Mapped[Optional[str]] = mapped_column(String(32))  # ISO datetime
    date_started: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    date_finished: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=_utcnow)
    updated_at: Mapped[str] = mapped_column(String(32), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', author='{self.author}')>"

    def to_schema(self) -> schemas.Book:
        """Convert to the engine's Book schema."""
        return schemas.Book(
            id=self.id,
            title=self.title,
            author=self.author,
            status=self.status,
            progress=self.progress or 0,
            total_pages=self.total_pages,
            current_page=self.current_page,
            date_added=self.date_added,
            date_modified=self.date_modified,
            date_started=self.date_started,
            date_finished=self.date_finished,
        )

    def apply(self, values: dict) -> None:
        """Set columns from schema-typed values."""
        for field, value in values.items():
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            elif isinstance(value, schemas.BookStatus):
                value = value.value
            setattr(self, field, value)


class StreakHistoryRecord(Base):
    """Serialized streak history, one row per user."""

    __tablename__ = "streak_histories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)

    # JSON of StreakHistory.to_dict()
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_calculated: Mapped[Optional[str]] = mapped_column(String(32))
    updated_at: Mapped[str] = mapped_column(String(32), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<StreakHistoryRecord(user_id={self.user_id}, version={self.version})>"

    def get_history(self) -> StreakHistory:
        """Deserialize the stored history."""
        data = json.loads(self.payload) if self.payload else {}
        return StreakHistory.from_dict(data, version=self.version)

    def set_history(self, history: StreakHistory) -> None:
        """Serialize a history into this row (version is left to the caller)."""
        self.payload = json.dumps(history.to_dict())
        self.last_calculated = history.last_calculated.isoformat()
