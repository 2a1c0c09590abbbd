"""Reading streak service module."""

from .manager import StreakManager
from .schemas import StreakCalendar, StreakStatus

__all__ = [
    "StreakManager",
    "StreakCalendar",
    "StreakStatus",
]
