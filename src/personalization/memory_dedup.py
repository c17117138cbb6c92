"""
Memory Deduplication.

Collapses loosely-keyed memory records ("Interest_In_Travel" vs
"interest in travel") into one record per (category, normalized key),
keeping the highest-confidence instance, then caps each category.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from src.personalization.models import MemoryRecord


@dataclass(frozen=True)
class MemorySet:
    """Deduplicated memories grouped by category."""

    by_category: Mapping[str, tuple[MemoryRecord, ...]] = field(default_factory=dict)
    total_count: int = 0  # unique records before the per-category cap
    duplicates_removed: int = 0
    expired_removed: int = 0

    @classmethod
    def empty(cls) -> MemorySet:
        return cls()

    @property
    def all(self) -> list[MemoryRecord]:
        """Flattened records, category order then confidence order."""
        return [m for records in self.by_category.values() for m in records]

    @property
    def retained_count(self) -> int:
        return sum(len(records) for records in self.by_category.values())

    def category(self, name: str) -> tuple[MemoryRecord, ...]:
        return self.by_category.get(name, ())


class MemoryDeduplicator:
    """
    Deduplicate and cap caller memories.

    Rules:
    - Key normalization: lowercase, whitespace runs → single underscore
    - Highest confidence wins; equal confidence keeps the first seen
    - Within a category, confidence descending (stable), capped at
      `memories_per_category`
    """

    def __init__(self, memories_per_category: int = 5):
        if memories_per_category < 1:
            raise ValueError("memories_per_category must be at least 1")
        self.memories_per_category = memories_per_category

    def deduplicate(
        self,
        records: Iterable[MemoryRecord],
        now: datetime | None = None,
    ) -> list[MemoryRecord]:
        """
        Deduplicate and cap memory records.

        Args:
            records: Raw memory records in arrival order
            now: When given, records expired at this instant are dropped first

        Returns:
            Records grouped by category (first-seen category order),
            confidence descending within each category
        """
        return self.group(records, now=now).all

    def group(
        self,
        records: Iterable[MemoryRecord],
        now: datetime | None = None,
    ) -> MemorySet:
        """Deduplicate, cap, and group memory records by category."""
        unique, duplicates, expired = self._collapse(records, now)

        grouped: dict[str, list[MemoryRecord]] = {}
        for record in unique:
            grouped.setdefault(record.category, []).append(record)

        by_category: dict[str, tuple[MemoryRecord, ...]] = {}
        for category, members in grouped.items():
            # sorted() is stable, so equal confidences keep first-seen order
            ranked = sorted(members, key=lambda m: -m.confidence)
            by_category[category] = tuple(ranked[: self.memories_per_category])

        logger.debug(
            f"Memories: {len(unique)} unique across {len(by_category)} categories "
            f"({duplicates} duplicates, {expired} expired removed)"
        )

        return MemorySet(
            by_category=by_category,
            total_count=len(unique),
            duplicates_removed=duplicates,
            expired_removed=expired,
        )

    def _collapse(
        self,
        records: Iterable[MemoryRecord],
        now: datetime | None,
    ) -> tuple[list[MemoryRecord], int, int]:
        seen: dict[tuple[str, str], MemoryRecord] = {}
        duplicates = 0
        expired = 0

        for record in records:
            if now is not None and not record.is_active(now):
                expired += 1
                continue
            key = (record.category, record.normalized_key)
            existing = seen.get(key)
            if existing is None:
                seen[key] = record
                continue
            duplicates += 1
            if record.confidence > existing.confidence:
                seen[key] = record

        # dict keeps insertion order of the first-seen key
        return list(seen.values()), duplicates, expired
