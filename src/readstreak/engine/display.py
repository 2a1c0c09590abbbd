"""Labels for showing why a day counts as a reading day.

Only presentation uses the source priority here. Whether a day counts is
decided by the merger: any source at all makes it a reading day.
"""

from typing import Optional

from .schemas import ReadingDayEntry, SourceType

# Higher wins when a single indicator is shown
SOURCE_PRIORITY = {
    SourceType.MANUAL: 3,
    SourceType.BOOK_COMPLETION: 2,
    SourceType.PROGRESS_UPDATE: 1,
}

SOURCE_LABELS = {
    SourceType.MANUAL: "Marked as read",
    SourceType.BOOK_COMPLETION: "Book reading period",
    SourceType.PROGRESS_UPDATE: "Progress update",
}


def primary_source(entry: Optional[ReadingDayEntry]) -> Optional[SourceType]:
    """The single source type to display for a day, or None if it has none."""
    if entry is None or not entry.sources:
        return None
    return max(entry.source_types, key=SOURCE_PRIORITY.__getitem__)


def sources_by_priority(entry: ReadingDayEntry) -> list[SourceType]:
    """Distinct source types of an entry, highest priority first."""
    return sorted(entry.source_types, key=SOURCE_PRIORITY.__getitem__, reverse=True)


def describe_day(entry: Optional[ReadingDayEntry]) -> str:
    source = primary_source(entry)
    if source is None:
        return "No reading"
    return SOURCE_LABELS[source]
