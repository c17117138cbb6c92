"""
Unit tests for MemoryDeduplicator.

Covers key normalization, highest-confidence retention, per-category
capping and idempotence.
"""

from datetime import timedelta

import pytest

from src.personalization.memory_dedup import MemoryDeduplicator, MemorySet
from src.personalization.models import MemoryRecord, normalize_memory_key


class TestKeyNormalization:
    def test_case_and_whitespace_collapse(self):
        assert normalize_memory_key("Interest In   Travel") == "interest_in_travel"

    def test_leading_and_trailing_whitespace_ignored(self):
        assert normalize_memory_key("  favourite food ") == "favourite_food"

    def test_underscores_preserved(self):
        assert normalize_memory_key("Interest_In_Travel") == "interest_in_travel"


class TestDeduplication:
    def test_higher_confidence_instance_retained(self):
        """Two spellings of the same key collapse to the 0.9 record."""
        records = [
            MemoryRecord(category="FACT", key="Interest_In_Travel", value="Japan", confidence=0.6),
            MemoryRecord(category="FACT", key="interest_in_travel", value="Japan", confidence=0.9),
        ]

        result = MemoryDeduplicator().deduplicate(records)

        assert len(result) == 1
        assert result[0].confidence == pytest.approx(0.9)
        assert result[0].key == "interest_in_travel"

    def test_equal_confidence_keeps_first_seen(self):
        records = [
            MemoryRecord(category="FACT", key="pet name", value="Rex", confidence=0.7),
            MemoryRecord(category="FACT", key="Pet Name", value="Max", confidence=0.7),
        ]

        result = MemoryDeduplicator().deduplicate(records)

        assert [m.value for m in result] == ["Rex"]

    def test_same_key_in_different_categories_kept(self):
        records = [
            MemoryRecord(category="FACT", key="travel", value="Japan", confidence=0.5),
            MemoryRecord(category="PREFERENCE", key="travel", value="trains", confidence=0.5),
        ]

        result = MemoryDeduplicator().group(records)

        assert len(result.category("FACT")) == 1
        assert len(result.category("PREFERENCE")) == 1

    def test_counts_reported(self):
        records = [
            MemoryRecord(category="FACT", key="a", value="1", confidence=0.5),
            MemoryRecord(category="FACT", key="A", value="1", confidence=0.4),
            MemoryRecord(category="FACT", key="b", value="2", confidence=0.5),
        ]

        result = MemoryDeduplicator().group(records)

        assert result.total_count == 2
        assert result.duplicates_removed == 1
        assert result.retained_count == 2


class TestOrderingAndCap:
    def test_confidence_descending_within_category(self):
        records = [
            MemoryRecord(category="FACT", key="low", value="x", confidence=0.2),
            MemoryRecord(category="FACT", key="high", value="x", confidence=0.9),
            MemoryRecord(category="FACT", key="mid", value="x", confidence=0.5),
        ]

        result = MemoryDeduplicator().deduplicate(records)

        assert [m.key for m in result] == ["high", "mid", "low"]

    def test_categories_in_first_seen_order(self):
        records = [
            MemoryRecord(category="TOPIC", key="a", value="x"),
            MemoryRecord(category="FACT", key="b", value="x"),
            MemoryRecord(category="TOPIC", key="c", value="x"),
        ]

        result = MemoryDeduplicator().group(records)

        assert list(result.by_category) == ["TOPIC", "FACT"]

    def test_cap_applied_per_category(self):
        records = [
            MemoryRecord(category="FACT", key=f"fact {i}", value="x", confidence=i / 10)
            for i in range(8)
        ] + [MemoryRecord(category="TOPIC", key="only", value="x")]

        result = MemoryDeduplicator(memories_per_category=3).group(records)

        assert [m.key for m in result.category("FACT")] == ["fact 7", "fact 6", "fact 5"]
        assert len(result.category("TOPIC")) == 1
        assert result.total_count == 9

    def test_invalid_cap_rejected(self):
        with pytest.raises(ValueError):
            MemoryDeduplicator(memories_per_category=0)


class TestExpiry:
    def test_expired_records_dropped_before_dedup(self, now):
        records = [
            MemoryRecord(
                category="FACT",
                key="job",
                value="librarian",
                confidence=0.95,
                expires_at=now - timedelta(days=1),
            ),
            MemoryRecord(category="FACT", key="Job", value="nurse", confidence=0.4),
        ]

        result = MemoryDeduplicator().group(records, now=now)

        assert [m.value for m in result.all] == ["nurse"]
        assert result.expired_removed == 1
        assert result.duplicates_removed == 0

    def test_without_now_expiry_is_ignored(self, now):
        records = [
            MemoryRecord(category="FACT", key="job", value="librarian", expires_at=now - timedelta(days=1)),
        ]

        assert len(MemoryDeduplicator().deduplicate(records)) == 1


class TestIdempotence:
    def test_dedup_twice_is_stable(self):
        """Running the deduplicator on its own output changes nothing."""
        records = [
            MemoryRecord(category="FACT", key="Interest_In_Travel", value="Japan", confidence=0.6),
            MemoryRecord(category="FACT", key="interest in travel", value="Japan", confidence=0.9),
            MemoryRecord(category="TOPIC", key="football", value="Arsenal", confidence=0.4),
            MemoryRecord(category="FACT", key="kids", value="2", confidence=0.9),
            MemoryRecord(category="TOPIC", key="Football", value="Arsenal", confidence=0.8),
        ] + [
            MemoryRecord(category="FACT", key=f"extra {i}", value="x", confidence=0.3)
            for i in range(6)
        ]
        deduplicator = MemoryDeduplicator(memories_per_category=5)

        once = deduplicator.deduplicate(records)
        twice = deduplicator.deduplicate(once)

        assert twice == once

    def test_empty_input(self):
        result = MemoryDeduplicator().group([])

        assert result == MemorySet.empty()
        assert result.all == []
