"""Tests for the bounded in-memory hot cache."""

from __future__ import annotations

import pytest

from audit_trail.persistence.cache import HotCache
from audit_trail.schemas.audit import AuditAction, AuditEntry


def _entry(i: int) -> AuditEntry:
    return AuditEntry(
        timestamp=f"2026-01-20T10:00:{i % 60:02d}Z",
        action=AuditAction.DIAGRAM_UPDATE,
        resource_id=f"diagram-{i}",
    )


class TestHotCache:
    """Capacity, eviction order and hydration."""

    def test_append_and_snapshot_oldest_first(self):
        cache = HotCache(capacity=10)
        for i in range(3):
            cache.append(_entry(i))
        assert [e.resource_id for e in cache.snapshot()] == ["diagram-0", "diagram-1", "diagram-2"]
        assert len(cache) == 3

    def test_never_exceeds_capacity(self):
        cache = HotCache(capacity=50)
        for i in range(175):
            cache.append(_entry(i))
            assert len(cache) <= 50
        assert len(cache) == 50

    def test_evicts_oldest(self):
        cache = HotCache(capacity=3)
        for i in range(5):
            cache.append(_entry(i))
        assert [e.resource_id for e in cache.snapshot()] == ["diagram-2", "diagram-3", "diagram-4"]

    def test_snapshot_is_a_copy(self):
        cache = HotCache(capacity=3)
        cache.append(_entry(0))
        snapshot = cache.snapshot()
        snapshot.clear()
        assert len(cache) == 1

    def test_zero_capacity_caches_nothing(self):
        cache = HotCache(capacity=0)
        cache.append(_entry(0))
        assert cache.snapshot() == []

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            HotCache(capacity=-1)

    def test_hydrate_places_durable_entries_first(self):
        cache = HotCache(capacity=10)
        cache.append(_entry(100))
        cache.hydrate([_entry(1), _entry(2)])
        assert [e.resource_id for e in cache.snapshot()] == ["diagram-1", "diagram-2", "diagram-100"]

    def test_hydrate_trims_oldest_durable_entries(self):
        cache = HotCache(capacity=3)
        cache.append(_entry(100))
        cache.hydrate([_entry(1), _entry(2), _entry(3)])
        assert [e.resource_id for e in cache.snapshot()] == ["diagram-2", "diagram-3", "diagram-100"]
