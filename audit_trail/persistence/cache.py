"""Hot cache — bounded in-memory FIFO of the most recent audit entries.

Serves "recent activity" reads without touching the database. Eviction is
independent of persistence: an entry may leave the cache while still pending,
or be cached while not yet flushed. Filtering and ordering are the caller's job.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from audit_trail.schemas.audit import AuditEntry


class HotCache:
    """Ring buffer holding at most ``capacity`` entries, oldest first."""

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            msg = f"Hot cache capacity must be >= 0, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: AuditEntry) -> None:
        """Add an entry, evicting the oldest one when full."""
        self._entries.append(entry)

    def snapshot(self) -> list[AuditEntry]:
        """Copy of the cached entries, oldest first."""
        return list(self._entries)

    def hydrate(self, entries: Iterable[AuditEntry]) -> None:
        """Seed the cache with durable entries (oldest first).

        Entries appended before hydration are newer than anything on disk, so
        they stay at the tail; the oldest durable entries are dropped first
        when the combination exceeds capacity.
        """
        existing = list(self._entries)
        self._entries.clear()
        self._entries.extend(entries)
        self._entries.extend(existing)
