"""Retention sweeper — deletes audit rows older than the retention horizon.

Ticked by the batch persister after every flush cycle; sweeps on every
``cleanup_frequency``-th tick. ``retention_days = 0`` keeps entries forever.

The hot cache is left alone: an entry swept from disk can still be served by
``recent()`` until it is evicted.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from audit_trail.persistence.store import AuditStore
from audit_trail.schemas.audit import format_timestamp

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Periodic deletion of aged audit entries."""

    def __init__(self, store: AuditStore, retention_days: int, cleanup_frequency: int) -> None:
        self._store = store
        self._retention_days = retention_days
        self._cleanup_frequency = cleanup_frequency
        self._cycles = 0

    @property
    def enabled(self) -> bool:
        return self._retention_days > 0

    def cutoff(self, now: datetime | None = None) -> str:
        """Canonical timestamp before which entries are expired."""
        now = now or datetime.now(UTC)
        return format_timestamp(now - timedelta(days=self._retention_days))

    async def tick(self) -> int:
        """Count one flush cycle; sweep when the cycle budget is used up."""
        self._cycles += 1
        if not self.enabled or self._cycles < self._cleanup_frequency:
            return 0
        self._cycles = 0
        return await self.sweep()

    async def sweep(self) -> int:
        """Delete expired rows in one statement. Returns the number deleted.

        Failures are logged and reported as 0 deletions.
        """
        if not self.enabled:
            return 0

        cutoff = self.cutoff()
        try:
            deleted = await self._store.delete_older_than(cutoff)
        except Exception:
            logger.exception("Failed to clean up audit entries older than %s", cutoff)
            return 0

        if deleted > 0:
            logger.info(
                "Deleted %d audit entries (cutoff=%s, retention_days=%d)",
                deleted,
                cutoff,
                self._retention_days,
            )
        return deleted
