"""Durable store — the ``audit_logs`` table and every query against it.

All writes go through ``insert_batch`` (one transaction per batch, all or
nothing) and ``delete_older_than`` (retention). Reads build a single
parameterized, AND-only statement that the table's indexes can serve.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from audit_trail.db.engine import create_db_engine, create_session_factory
from audit_trail.models.audit import AuditLog
from audit_trail.models.base import Base
from audit_trail.schemas.audit import AuditAction, AuditEntry, AuditFilter
from audit_trail.schemas.details import decode_details, encode_details

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100


class AuditStore:
    """Append-only audit table on an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(engine)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> AuditStore:
        return cls(create_db_engine(url, echo=echo))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_schema(self) -> None:
        """Create the table and indexes if they do not exist yet.

        Production deployments run the Alembic migrations instead; this is a
        no-op once they have.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    # ── Writes ───────────────────────────────────────────────────────

    async def insert_batch(self, entries: Sequence[AuditEntry]) -> int:
        """Insert every entry in one transaction.

        Any failure rolls the whole transaction back and propagates.
        """
        if not entries:
            return 0

        async with self._session_factory() as session:
            async with session.begin():
                session.add_all([_entry_to_row(entry) for entry in entries])
        return len(entries)

    async def delete_older_than(self, cutoff: str) -> int:
        """Delete rows whose timestamp is strictly before ``cutoff``."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AuditLog).where(AuditLog.timestamp < cutoff)
                )
        return result.rowcount or 0  # type: ignore[attr-defined]

    # ── Reads ────────────────────────────────────────────────────────

    async def query(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        """Filtered history, newest first (ties: most recently inserted first)."""
        audit_filter = audit_filter or AuditFilter()
        stmt = select(AuditLog)

        if audit_filter.filters_actor:
            if audit_filter.actor_id is None:
                stmt = stmt.where(AuditLog.actor_id.is_(None))
            else:
                stmt = stmt.where(AuditLog.actor_id == audit_filter.actor_id)
        if audit_filter.action is not None:
            stmt = stmt.where(AuditLog.action == audit_filter.action.value)
        if audit_filter.resource_id is not None:
            stmt = stmt.where(AuditLog.resource_id == audit_filter.resource_id)
        if audit_filter.since is not None:
            stmt = stmt.where(AuditLog.timestamp >= audit_filter.since_iso)
        if audit_filter.until is not None:
            stmt = stmt.where(AuditLog.timestamp <= audit_filter.until_iso)

        limit = audit_filter.limit if audit_filter.limit is not None else DEFAULT_QUERY_LIMIT
        stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return _rows_to_entries(rows)

    async def load_recent(self, limit: int) -> list[AuditEntry]:
        """The newest ``limit`` entries, returned oldest first."""
        if limit <= 0:
            return []

        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLog)
                .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
                .limit(limit)
            )
            rows = result.scalars().all()

        entries = _rows_to_entries(rows)
        entries.reverse()
        return entries

    async def stats(self) -> tuple[int, str | None, str | None]:
        """(row count, oldest timestamp, newest timestamp)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(AuditLog.id),
                    func.min(AuditLog.timestamp),
                    func.max(AuditLog.timestamp),
                )
            )
            count, oldest, newest = result.one()
        return count or 0, oldest, newest


# ── Row mapping ──────────────────────────────────────────────────────


def _entry_to_row(entry: AuditEntry) -> AuditLog:
    return AuditLog(
        timestamp=entry.timestamp,
        action=entry.action.value,
        resource_type=entry.resource_type.value,
        resource_id=entry.resource_id,
        actor_id=entry.actor_id,
        actor_role=entry.actor_role,
        details=encode_details(entry.details),
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
    )


def _row_to_entry(row: AuditLog) -> AuditEntry | None:
    try:
        action = AuditAction(row.action)
    except ValueError:
        logger.warning("Skipping audit row %s with unknown action %r", row.id, row.action)
        return None

    try:
        return AuditEntry(
            timestamp=row.timestamp,
            action=action,
            actor_id=row.actor_id,
            actor_role=row.actor_role,
            resource_id=row.resource_id,
            details=decode_details(row.details, context=row.timestamp),
            ip_address=row.ip_address,
            user_agent=row.user_agent,
        )
    except ValidationError as exc:
        logger.warning(
            "Skipping unreadable audit row %s: invalid fields %s",
            row.id,
            [".".join(str(p) for p in err["loc"]) for err in exc.errors()],
        )
        return None


def _rows_to_entries(rows: Sequence[AuditLog]) -> list[AuditEntry]:
    entries = []
    for row in rows:
        entry = _row_to_entry(row)
        if entry is not None:
            entries.append(entry)
    return entries
