"""Shared fixtures: a real SQLite store per test and an engine on top of it."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from audit_trail.config import AuditSettings
from audit_trail.engine import AuditEngine
from audit_trail.persistence.store import AuditStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}"


@pytest.fixture
def audit_config() -> AuditSettings:
    """Settings with a long flush interval so the timer never fires mid-test."""
    return AuditSettings(
        flush_interval_ms=60_000,
        max_memory_entries=1000,
        batch_size=100,
        retention_days=90,
        cleanup_frequency=100,
        drain_retry_delay_ms=0,
        log_entries=False,
    )


@pytest_asyncio.fixture
async def store(database_url) -> AsyncGenerator[AuditStore, None]:
    store = AuditStore.from_url(database_url)
    await store.create_schema()
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def engine(audit_config, store) -> AsyncGenerator[AuditEngine, None]:
    engine = AuditEngine(audit_config, store)
    await engine.init()
    yield engine
    await engine.shutdown()
