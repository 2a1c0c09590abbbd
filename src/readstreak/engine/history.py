"""Persisted reading history aggregate.

``StreakHistory`` is the snapshot storage keeps per user: the set of
reading days, the book periods they came from, and any explicit per-day
entries. Every operation here returns a new history; nothing is mutated
in place and nothing touches storage.

Older stores kept ``readingDays`` as a list, as a ``{"0": "2024-01-01"}``
style object, or as an object keyed by date. ``StreakHistory.from_dict``
accepts all of those; inside the engine only ``ReadingDaySet`` is used.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from .dates import format_date_iso, is_iso_date
from .schemas import ReadingDataSource, ReadingDayEntry, ReadingPeriod, SourceType

logger = logging.getLogger(__name__)

# Data model version written by to_dict()
CURRENT_HISTORY_VERSION = 1


class ReadingDaySet:
    """Sorted set of ISO ``YYYY-MM-DD`` reading days."""

    __slots__ = ("_days",)

    def __init__(self, days: Iterable[Any] = ()):
        self._days: set[str] = set()
        for day in days:
            self.add(day)

    def add(self, day: Any) -> None:
        """Add a date, datetime or ISO date string."""
        if isinstance(day, (date, datetime)):
            day = format_date_iso(day)
        if not is_iso_date(day):
            raise ValueError(f"Invalid reading day: {day!r}")
        self._days.add(day)

    def discard(self, day: Any) -> None:
        if isinstance(day, (date, datetime)):
            day = format_date_iso(day)
        self._days.discard(day)

    def union(self, *others: Iterable[Any]) -> "ReadingDaySet":
        result = ReadingDaySet()
        result._days = set(self._days)
        for other in others:
            for day in other:
                result.add(day)
        return result

    def copy(self) -> "ReadingDaySet":
        return self.union()

    def to_list(self) -> list[str]:
        return sorted(self._days)

    def __contains__(self, day: object) -> bool:
        if isinstance(day, (date, datetime)):
            day = format_date_iso(day)
        return day in self._days

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._days))

    def __len__(self) -> int:
        return len(self._days)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ReadingDaySet):
            return self._days == other._days
        if isinstance(other, (set, frozenset)):
            return self._days == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ReadingDaySet({self.to_list()!r})"


@dataclass
class StreakHistory:
    """Persisted streak snapshot for one user."""

    reading_days: ReadingDaySet = field(default_factory=ReadingDaySet)
    book_periods: list[ReadingPeriod] = field(default_factory=list)
    last_calculated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Explicit per-day entries (manual marks, notes), keyed by ISO date
    reading_day_entries: dict[str, ReadingDayEntry] = field(default_factory=dict)

    # Optimistic concurrency counter, managed by storage
    version: int = 0

    # -------------------------------------------------------------------------
    # Serialization (storage boundary only)
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible primitives."""
        return {
            "schemaVersion": CURRENT_HISTORY_VERSION,
            "readingDays": self.reading_days.to_list(),
            "bookPeriods": [p.model_dump(mode="json") for p in self.book_periods],
            "lastCalculated": self.last_calculated.isoformat(),
            "readingDayEntries": [
                self.reading_day_entries[day].model_dump(mode="json")
                for day in sorted(self.reading_day_entries)
            ],
        }

    @classmethod
    def from_dict(cls, data: dict, version: int = 0) -> "StreakHistory":
        """Load a history, upgrading legacy ``readingDays`` shapes."""
        reading_days = ReadingDaySet(_extract_reading_days(data.get("readingDays")))

        periods = []
        for raw in data.get("bookPeriods") or []:
            try:
                periods.append(ReadingPeriod.model_validate(raw))
            except ValueError as e:
                logger.warning("Dropping invalid stored book period %r: %s", raw, e)

        entries = {}
        for raw in data.get("readingDayEntries") or []:
            entry = _load_entry(raw)
            if entry is not None:
                entries[entry.date] = entry
                reading_days.add(entry.date)

        last_calculated = data.get("lastCalculated")
        if isinstance(last_calculated, str):
            last_calculated = datetime.fromisoformat(last_calculated)
        if last_calculated is None:
            last_calculated = datetime.now(timezone.utc)

        return cls(
            reading_days=reading_days,
            book_periods=periods,
            last_calculated=last_calculated,
            reading_day_entries=entries,
            version=version,
        )


def _extract_reading_days(raw: Any) -> list[str]:
    """Pull ISO dates out of any stored ``readingDays`` representation."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        values = list(raw)
    elif isinstance(raw, dict):
        # Serialized JS Set: either {"0": "2024-01-01"} or {"2024-01-01": true}
        values = [v for v in raw.values() if isinstance(v, str)]
        if not values:
            values = list(raw.keys())
    else:
        logger.warning("Unexpected readingDays type %s, ignoring", type(raw).__name__)
        return []

    days = [v for v in values if isinstance(v, str) and is_iso_date(v)]
    if len(days) != len(values):
        logger.warning("Skipped %d malformed reading days", len(values) - len(days))
    return days


# Legacy entries stored a single "source" of manual/book/progress
_LEGACY_SOURCE_TYPES = {
    "manual": SourceType.MANUAL,
    "book": SourceType.BOOK_COMPLETION,
    "progress": SourceType.PROGRESS_UPDATE,
}


def _load_entry(raw: dict) -> Optional[ReadingDayEntry]:
    if "source" in raw and "sources" not in raw:
        created = raw.get("createdAt") or datetime.now(timezone.utc).isoformat()
        book_ids = [str(b) for b in raw.get("bookIds") or []]
        raw = {
            "date": raw.get("date"),
            "sources": [{
                "type": _LEGACY_SOURCE_TYPES.get(raw["source"], SourceType.PROGRESS_UPDATE),
                "timestamp": created,
                "book_ids": book_ids,
            }],
            "book_ids": book_ids,
            "notes": raw.get("notes"),
        }
    try:
        return ReadingDayEntry.model_validate(raw)
    except ValueError as e:
        logger.warning("Dropping invalid stored reading day entry %r: %s", raw, e)
        return None


# ============================================================================
# Day entry operations
# ============================================================================


def add_reading_day_entry(
    history: StreakHistory,
    entry: ReadingDayEntry,
) -> StreakHistory:
    """Add an explicit entry, merging with any entry already on that date."""
    entries = dict(history.reading_day_entries)
    existing = entries.get(entry.date)
    if existing is not None:
        # Local import: merger depends on this module
        from .merger import resolve_conflicts

        entry = resolve_conflicts([existing, entry])
    entries[entry.date] = entry

    return replace(
        history,
        reading_days=history.reading_days.union([entry.date]),
        reading_day_entries=entries,
        last_calculated=datetime.now(timezone.utc),
    )


def manual_entry(
    day: date,
    book_ids: Optional[list[str]] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReadingDayEntry:
    """Build the entry for a manual "I read on this day" mark."""
    now = now or datetime.now(timezone.utc)
    book_ids = sorted(set(book_ids or []))
    return ReadingDayEntry(
        date=format_date_iso(day),
        sources=[ReadingDataSource(
            type=SourceType.MANUAL,
            timestamp=now,
            book_ids=book_ids,
            notes=notes,
        )],
        book_ids=book_ids,
        notes=notes,
    )


def mark_reading_day(
    history: StreakHistory,
    day: date,
    book_ids: Optional[list[str]] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StreakHistory:
    """Record a manual mark for a day."""
    return add_reading_day_entry(history, manual_entry(day, book_ids, notes, now))


def remove_reading_day_entry(history: StreakHistory, day: Any) -> StreakHistory:
    """Remove a day entirely: its entry and its membership in the day set."""
    day = format_date_iso(day)
    days = history.reading_days.copy()
    days.discard(day)
    entries = {k: v for k, v in history.reading_day_entries.items() if k != day}
    return replace(
        history,
        reading_days=days,
        reading_day_entries=entries,
        last_calculated=datetime.now(timezone.utc),
    )


def update_reading_day_entry(
    history: StreakHistory,
    day: Any,
    notes: Optional[str] = None,
    book_ids: Optional[list[str]] = None,
) -> StreakHistory:
    """Patch notes/book ids of an existing entry.

    Raises:
        ValueError: If there is no reading day on that date
    """
    day = format_date_iso(day)
    if day not in history.reading_days:
        raise ValueError(f"No reading day recorded on {day}")

    entry = history.reading_day_entries.get(day)
    if entry is None:
        # Day came from a book period or an import; give it an explicit entry
        entry = ReadingDayEntry(date=day)

    patch: dict[str, Any] = {}
    if notes is not None:
        patch["notes"] = notes
    if book_ids is not None:
        patch["book_ids"] = sorted(set(book_ids))

    entries = dict(history.reading_day_entries)
    entries[day] = entry.model_copy(update=patch)
    return replace(
        history,
        reading_day_entries=entries,
        last_calculated=datetime.now(timezone.utc),
    )
