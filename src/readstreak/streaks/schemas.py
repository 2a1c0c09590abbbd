"""Pydantic schemas for the streak service."""

from enum import Enum

from pydantic import BaseModel, Field


class StreakStatus(str, Enum):
    """Status of the current streak."""

    ACTIVE = "active"
    ENDED = "ended"
    AT_RISK = "at_risk"  # No reading today yet


class StreakCalendar(BaseModel):
    """Calendar view of reading activity."""

    year: int
    month: int
    days: dict[int, bool]  # day -> has_reading
    streak_days: dict[int, int]  # day -> streak_length at that day
    sources: dict[int, str] = Field(default_factory=dict)  # day -> primary source
    total_reading_days: int
    total_pages: float
