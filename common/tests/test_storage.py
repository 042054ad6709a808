"""
Unit Tests for the In-Memory Storage

Tests cover:
1. Copy-on-write updates
2. Bulk updates
3. The monotonic rule code counter
"""

from dataclasses import dataclass

import pytest

from common.storage import Collection, InMemoryStorage


@dataclass
class Item:
    id: str
    active: bool = True


class TestCollection:
    """Tests for the id-keyed collection."""

    def test_update_replaces_instead_of_mutating(self):
        """Test an update leaves previously read instances untouched."""
        items = Collection()
        original = items.create(Item("a"))

        updated = items.update("a", active=False)

        assert original.active
        assert not updated.active
        assert items.get("a") is updated

    def test_update_many(self):
        """Test bulk updates return every replaced instance."""
        items = Collection()
        for item_id in ("a", "b", "c"):
            items.create(Item(item_id))

        updated = items.update_many(["a", "c"], active=False)

        assert [i.id for i in updated] == ["a", "c"]
        assert [i.active for i in items.list()] == [False, True, False]

    def test_duplicate_and_missing_ids(self):
        """Test creating an existing id or updating a missing one raises KeyError."""
        items = Collection()
        items.create(Item("a"))

        with pytest.raises(KeyError):
            items.create(Item("a"))
        with pytest.raises(KeyError):
            items.update("missing", active=False)
        assert "a" in items and len(items) == 1


class TestRuleCounter:
    """Tests for rule number allocation."""

    def test_reserve_never_moves_backwards(self):
        """Test reserving advances the counter and lower reservations are ignored."""
        storage = InMemoryStorage()
        storage.reserve_rule_number(41)
        storage.reserve_rule_number(3)

        assert storage.next_rule_number() == 42
