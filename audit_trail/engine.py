"""Audit engine — the single entry point producers and readers talk to.

Usage:
    engine = AuditEngine(settings.audit, AuditStore.from_url(settings.db.url))
    await engine.init()

    # Producers (fire-and-forget, never raises):
    engine.record(
        AuditAction.SHARE_ADD,
        diagram_id,
        actor_id=user.id,
        actor_role=user.role,
        details={"grantee": other.id},
        provenance=provenance_from_request(request),
    )

    # Readers:
    engine.recent(AuditFilter(resource_id=diagram_id))        # hot cache
    await engine.query(AuditFilter(actor_id=None, limit=50))  # durable, anonymous only

    await engine.shutdown()  # drains every pending write

Everything runs on one asyncio event loop. ``record()`` only touches
in-memory structures; a background task flushes the write queue every
``flush_interval_ms``. No module-level state: each engine owns its cache,
queue, timer and store, so several can coexist.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

import structlog
from pydantic import ValidationError

from audit_trail.config import AuditSettings, settings
from audit_trail.persistence.cache import HotCache
from audit_trail.persistence.persister import BatchPersister, WriteQueue
from audit_trail.persistence.retention import RetentionSweeper
from audit_trail.persistence.store import AuditStore
from audit_trail.schemas.audit import (
    AuditAction,
    AuditEntry,
    AuditFilter,
    AuditStats,
    MemoryStats,
    Provenance,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# Structured one-line-per-entry audit stream, separate from operational logs.
audit_log = structlog.get_logger("audit_trail.audit")


class AuditEngine:
    """Durable, queryable audit trail with a hot cache and batched writes."""

    def __init__(self, config: AuditSettings | None = None, store: AuditStore | None = None) -> None:
        self.config = config or settings.audit
        self.store = store or AuditStore.from_url(settings.db.url)

        self._cache = HotCache(self.config.max_memory_entries)
        self._queue = WriteQueue()
        self._sweeper = RetentionSweeper(
            self.store,
            retention_days=self.config.retention_days,
            cleanup_frequency=self.config.cleanup_frequency,
        )
        self._persister = BatchPersister(
            self._queue,
            self.store,
            batch_size=self.config.batch_size,
            sweeper=self._sweeper,
            pending_warn_threshold=self.config.pending_warn_threshold,
        )

        self._timer_task: asyncio.Task[None] | None = None
        self._initialized = False
        self._last_timestamp: str | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def pending_writes(self) -> int:
        return self._persister.pending

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ── Producer contract ────────────────────────────────────────────

    def record(
        self,
        action: AuditAction | str,
        resource_id: str,
        *,
        actor_id: str | None = None,
        actor_role: str | None = None,
        details: dict[str, Any] | None = None,
        provenance: Provenance | None = None,
    ) -> AuditEntry | None:
        """Record an audit event. Never raises, never blocks on I/O.

        Returns the recorded entry, or None if the input was invalid (the
        problem is logged and the event dropped).
        """
        try:
            timestamp = utc_now_iso()
            # Keep timestamps non-decreasing in append order even if the clock steps back.
            if self._last_timestamp is not None and timestamp < self._last_timestamp:
                timestamp = self._last_timestamp

            entry = AuditEntry(
                timestamp=timestamp,
                action=action,
                actor_id=actor_id,
                actor_role=actor_role,
                resource_id=resource_id,
                details=details,
                ip_address=provenance.ip_address if provenance else None,
                user_agent=provenance.user_agent if provenance else None,
            )
        except ValidationError as exc:
            # Field locations only; input values may be sensitive.
            logger.error(
                "Dropped invalid audit event (action=%r, resource=%r): invalid fields %s",
                action,
                resource_id,
                [".".join(str(p) for p in err["loc"]) for err in exc.errors()],
            )
            return None
        except Exception:
            logger.exception("Failed to build audit entry (action=%r, resource=%r)", action, resource_id)
            return None

        self._last_timestamp = entry.timestamp
        return self.append(entry)

    def append(self, entry: AuditEntry) -> AuditEntry | None:
        """Queue a pre-built entry for persistence and cache it."""
        try:
            self._queue.enqueue(entry)
            self._cache.append(entry)
        except Exception:
            logger.exception("Failed to queue audit entry for %s", entry.resource_id)
            return None

        if self.config.log_entries:
            try:
                audit_log.info("audit", entry=entry.model_dump(mode="json", exclude_none=True))
            except Exception:
                logger.exception("Failed to emit audit log line")

        return entry

    # ── Reader contract ──────────────────────────────────────────────

    def recent(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        """Hot-cache read: matching entries, newest first.

        Only covers what is still cached; use ``query()`` for full history.
        """
        audit_filter = audit_filter or AuditFilter()
        # Newest-appended first, then a stable sort keeps that order for equal timestamps.
        entries = [e for e in reversed(self._cache.snapshot()) if audit_filter.matches(e)]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if audit_filter.limit is not None:
            entries = entries[: audit_filter.limit]
        return entries

    async def query(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        """Durable read over the complete retained history."""
        return await self.store.query(audit_filter)

    async def stats(self) -> AuditStats:
        total, oldest, newest = await self.store.stats()
        return AuditStats(
            total_entries=total,
            oldest_entry=oldest,
            newest_entry=newest,
            pending_writes=self._persister.pending,
            cache_size=len(self._cache),
        )

    def memory_stats(self) -> MemoryStats:
        return MemoryStats.from_entries(self._cache.snapshot())

    # ── Operational surface ──────────────────────────────────────────

    async def flush_now(self) -> int:
        """Flush one batch immediately. Returns the number of entries written."""
        return await self._persister.flush()

    async def cleanup_now(self) -> int:
        """Run the retention sweep immediately. Returns the number deleted."""
        return await self._persister.sweep()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        """Create the schema, hydrate the hot cache and start the flush timer.

        Idempotent. Database problems are logged, not raised: the timer still
        starts and keeps retrying the writes.
        """
        if self._initialized:
            return
        self._initialized = True

        loaded = 0
        try:
            await self.store.create_schema()
            recent = await self.store.load_recent(self._cache.capacity)
            self._cache.hydrate(recent)
            loaded = len(recent)
        except Exception:
            logger.exception("Failed to load audit history; starting with an empty cache")

        self._timer_task = asyncio.create_task(self._flush_loop(), name="audit-flush-timer")
        logger.info(
            "Audit persistence initialized (loaded=%d, flush_interval_ms=%d, batch_size=%d)",
            loaded,
            self.config.flush_interval_ms,
            self.config.batch_size,
        )

    async def shutdown(self) -> None:
        """Stop the timer, then drain every pending write. Idempotent.

        An in-flight timer flush is never interrupted. A failed drain
        iteration is logged and retried; the drain has no timeout.
        """
        if self._timer_task is not None:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None

        drained = 0
        # Waits out a shielded timer flush that outlived the cancelled task.
        while await self._persister.settled_pending() > 0:
            try:
                drained += await self._persister.flush()
                failed = self._persister.last_flush_failed
            except Exception:
                logger.exception("Audit drain iteration failed")
                failed = True

            if failed:
                logger.warning("Audit drain retrying, %d entries still pending", self._persister.pending)
                await asyncio.sleep(self.config.drain_retry_delay_seconds)

        await self.store.dispose()
        logger.info("Audit persistence shutdown complete (drained=%d)", drained)

    @contextlib.asynccontextmanager
    async def lifespan(self) -> AsyncIterator[AuditEngine]:
        """Context manager for the engine lifecycle.

        Usage in a FastAPI lifespan:
            async with engine.lifespan():
                yield
        """
        await self.init()
        try:
            yield self
        finally:
            await self.shutdown()

    # ── Background timer ─────────────────────────────────────────────

    async def _flush_loop(self) -> None:
        """Flush the write queue every ``flush_interval_ms`` until cancelled."""
        interval = self.config.flush_interval_seconds
        while True:
            try:
                await asyncio.sleep(interval)
                # Shielded: cancelling the timer must not abort a running transaction.
                await asyncio.shield(self._persister.flush())
            except asyncio.CancelledError:
                logger.debug("Audit flush timer stopped")
                break
            except Exception:
                logger.exception("Error in audit flush timer")
