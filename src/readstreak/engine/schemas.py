"""Pydantic schemas for the reading-streak engine.

These schemas describe the books the engine reads, the per-day reading
records it produces, and the streak summary handed back to callers.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .dates import is_iso_date, to_date


class BookStatus(str, Enum):
    """Reading status of a book."""

    WANT_TO_READ = "want_to_read"
    CURRENTLY_READING = "currently_reading"
    FINISHED = "finished"


class SourceType(str, Enum):
    """Kind of evidence backing a reading day."""

    MANUAL = "manual"  # User marked the day
    BOOK_COMPLETION = "book_completion"  # Inside a book's start -> finish range
    PROGRESS_UPDATE = "progress_update"  # Progress edited that day


# ============================================================================
# Books
# ============================================================================


class Book(BaseModel):
    """A book as seen by the streak engine (read-only)."""

    id: Optional[str] = None
    title: str = ""
    author: str = ""
    status: BookStatus = BookStatus.WANT_TO_READ
    progress: float = Field(0, ge=0, le=100, description="Percent complete")
    total_pages: Optional[int] = Field(None, ge=0)
    current_page: Optional[int] = Field(None, ge=0)

    # Dates
    date_added: Optional[datetime] = None
    date_modified: Optional[datetime] = None
    date_started: Optional[date] = None
    date_finished: Optional[date] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Accept numeric identifiers from older exports."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("date_started", "date_finished", mode="before")
    @classmethod
    def truncate_to_date(cls, v):
        """Drop any time component; reading days have day granularity."""
        if v is None or v == "":
            return None
        if isinstance(v, (date, str)):
            return to_date(v)
        return v


# ============================================================================
# Reading days
# ============================================================================


class ReadingDataSource(BaseModel):
    """One piece of provenance for a reading day."""

    type: SourceType
    timestamp: datetime
    book_ids: list[str] = Field(default_factory=list)
    metadata: dict[str, float] = Field(default_factory=dict)
    notes: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC so sources stay comparable."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def progress(self) -> float:
        """Pages this source contributes to today's goal."""
        return self.metadata.get("progress", 0) or 0


class ReadingDayEntry(BaseModel):
    """All evidence for a single calendar day."""

    date: str = Field(..., description="ISO date YYYY-MM-DD")
    sources: list[ReadingDataSource] = Field(default_factory=list)
    book_ids: list[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v):
        if isinstance(v, (date, datetime)):
            return to_date(v).isoformat()
        if not is_iso_date(v):
            raise ValueError(f"Invalid date format: {v!r}. Use YYYY-MM-DD")
        return v

    @property
    def source_types(self) -> set[SourceType]:
        return {source.type for source in self.sources}

    @property
    def progress(self) -> float:
        """Sum of progress contributions across sources."""
        return sum(source.progress for source in self.sources)


class ReadingPeriod(BaseModel):
    """Inclusive date range a single book was being read."""

    book_id: Optional[str] = None
    title: str = ""
    author: str = ""
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_range(self) -> "ReadingPeriod":
        if self.end_date < self.start_date:
            raise ValueError(
                f"End date {self.end_date} is before start date {self.start_date}"
            )
        return self

    @computed_field
    @property
    def total_days(self) -> int:
        """Days in the period, counting both ends."""
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


# ============================================================================
# Results
# ============================================================================


class StreakData(BaseModel):
    """Computed streak summary."""

    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    last_read_date: Optional[date] = None
    today_progress: float = 0
    daily_goal: float = 0
    has_read_today: bool = False

    @property
    def goal_progress(self) -> Optional[float]:
        """Progress toward the daily goal (0-1+)."""
        if self.daily_goal and self.daily_goal > 0:
            return self.today_progress / self.daily_goal
        return None


class ProgressEntry(BaseModel):
    """A single progress change and its estimated pages."""

    date: datetime
    old_progress: float
    new_progress: float
    pages_read: int = Field(0, ge=0)
