"""Write queue and batch persister.

``record()`` appends to an unbounded in-memory WriteQueue; the BatchPersister
drains it into the durable store one transaction per batch. A failed batch is
put back at the head of the queue, unmodified and in order, and retried on the
next flush, so entries are never dropped.

The queue is unbounded. A sustained database outage shows up as
a growing ``pending_writes`` count, and every failed flush above
``pending_warn_threshold`` logs a backlog warning for external monitoring.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence

from audit_trail.persistence.retention import RetentionSweeper
from audit_trail.persistence.store import AuditStore
from audit_trail.schemas.audit import AuditEntry

logger = logging.getLogger(__name__)


class WriteQueue:
    """FIFO of entries waiting to be persisted."""

    def __init__(self) -> None:
        self._pending: deque[AuditEntry] = deque()

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, entry: AuditEntry) -> None:
        self._pending.append(entry)

    def take(self, n: int) -> list[AuditEntry]:
        """Pop up to ``n`` entries from the head, preserving order."""
        count = min(n, len(self._pending))
        return [self._pending.popleft() for _ in range(count)]

    def requeue(self, batch: Sequence[AuditEntry]) -> None:
        """Put a batch back at the head, in its original order."""
        self._pending.extendleft(reversed(batch))


class BatchPersister:
    """Flushes the write queue to the store, one batch per call."""

    def __init__(
        self,
        queue: WriteQueue,
        store: AuditStore,
        *,
        batch_size: int,
        sweeper: RetentionSweeper | None = None,
        pending_warn_threshold: int = 10_000,
    ) -> None:
        self._queue = queue
        self._store = store
        self._batch_size = batch_size
        self._sweeper = sweeper
        self._pending_warn_threshold = pending_warn_threshold
        self._lock = asyncio.Lock()
        self.last_flush_failed = False

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def flush(self) -> int:
        """Write up to ``batch_size`` pending entries in one transaction.

        Returns the number written; 0 when the queue is empty or the batch
        failed (in which case it is back in the queue). Concurrent calls are
        serialized, so only one transaction is ever open.
        """
        async with self._lock:
            if not self._queue:
                self.last_flush_failed = False
                await self._after_cycle()
                return 0

            batch = self._queue.take(self._batch_size)
            try:
                written = await self._store.insert_batch(batch)
            except Exception as exc:
                self._queue.requeue(batch)
                self.last_flush_failed = True
                logger.warning(
                    "Failed to flush %d audit entries, re-queued for retry: %s",
                    len(batch),
                    exc,
                )
                if len(self._queue) > self._pending_warn_threshold:
                    logger.warning(
                        "Audit write backlog at %d pending entries (threshold %d)",
                        len(self._queue),
                        self._pending_warn_threshold,
                    )
                return 0

            self.last_flush_failed = False
            logger.debug("Flushed %d audit entries (%d still pending)", written, len(self._queue))
            await self._after_cycle()
            return written

    async def settled_pending(self) -> int:
        """Pending count once any in-flight flush has finished.

        A running flush holds its batch outside the queue until it commits or
        requeues it, so ``pending`` alone can read 0 mid-flight.
        """
        async with self._lock:
            return len(self._queue)

    async def sweep(self) -> int:
        """Run the retention sweep between flushes, never during one."""
        if self._sweeper is None:
            return 0
        async with self._lock:
            return await self._sweeper.sweep()

    async def _after_cycle(self) -> None:
        if self._sweeper is not None:
            await self._sweeper.tick()
