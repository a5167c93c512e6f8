"""Tests for the admin audit API and request provenance helpers.

Covers:
- Query parameter → AuditFilter translation (actor, anonymous, ranges, limits)
- Validation errors (unknown action, conflicting actor filters, page size)
- Stats, manual flush and cleanup endpoints
- 503 when no engine is attached
- Provenance extraction from forwarding headers
- Full app lifespan against a temporary SQLite database
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from audit_trail.api.router import router
from audit_trail.context import provenance_from_request
from audit_trail.schemas.audit import AuditAction, AuditEntry, AuditStats, MemoryStats


def _entry(resource_id: str = "diagram-1", **overrides) -> AuditEntry:
    fields = {
        "timestamp": "2026-02-16T14:30:00Z",
        "action": AuditAction.DIAGRAM_UPDATE,
        "actor_id": "user-1",
        "resource_id": resource_id,
    }
    fields.update(overrides)
    return AuditEntry(**fields)


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.recent.return_value = [_entry()]
    engine.query = AsyncMock(return_value=[_entry("diagram-2"), _entry("diagram-1")])
    engine.stats = AsyncMock(return_value=AuditStats(
        total_entries=2,
        oldest_entry="2026-02-16T14:30:00.000000Z",
        newest_entry="2026-02-16T14:31:00.000000Z",
        pending_writes=3,
        cache_size=5,
    ))
    engine.memory_stats.return_value = MemoryStats(
        total_entries=5,
        action_counts={"diagram.update": 5},
        unique_actors=1,
    )
    engine.flush_now = AsyncMock(return_value=3)
    engine.cleanup_now = AsyncMock(return_value=12)
    return engine


@pytest.fixture
def client(mock_engine):
    """Test client over a bare app with the audit router and a mocked engine."""
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.state.audit_engine = mock_engine
    return TestClient(test_app)


def _passed_filter(mock_method):
    return mock_method.call_args.args[0]


# ── Read endpoints ───────────────────────────────────────────────────


class TestRecent:
    def test_returns_serialized_entries(self, client):
        resp = client.get("/audit/recent")
        assert resp.status_code == 200
        [body] = resp.json()
        assert body["action"] == "diagram.update"
        assert body["resource_type"] == "diagram"
        assert body["timestamp"] == "2026-02-16T14:30:00.000000Z"

    def test_no_params_means_no_filter(self, client, mock_engine):
        client.get("/audit/recent")
        audit_filter = _passed_filter(mock_engine.recent)
        assert audit_filter.filters_actor is False
        assert audit_filter.limit is None

    def test_filters_passed_through(self, client, mock_engine):
        resp = client.get(
            "/audit/recent",
            params={"actor_id": "user-7", "action": "share.add", "resource_id": "diagram-9", "limit": 20},
        )
        assert resp.status_code == 200
        audit_filter = _passed_filter(mock_engine.recent)
        assert audit_filter.actor_id == "user-7"
        assert audit_filter.filters_actor is True
        assert audit_filter.action == AuditAction.SHARE_ADD
        assert audit_filter.resource_id == "diagram-9"
        assert audit_filter.limit == 20

    def test_anonymous_selects_null_actor(self, client, mock_engine):
        client.get("/audit/recent", params={"anonymous": "true"})
        audit_filter = _passed_filter(mock_engine.recent)
        assert audit_filter.filters_actor is True
        assert audit_filter.actor_id is None


class TestLogs:
    def test_returns_query_results(self, client, mock_engine):
        resp = client.get("/audit/logs")
        assert resp.status_code == 200
        assert [e["resource_id"] for e in resp.json()] == ["diagram-2", "diagram-1"]
        mock_engine.query.assert_awaited_once()

    def test_time_range(self, client, mock_engine):
        client.get("/audit/logs", params={"since": "2026-01-01T00:00:00Z", "until": "2026-01-31T23:59:59Z"})
        audit_filter = _passed_filter(mock_engine.query)
        assert audit_filter.since == datetime(2026, 1, 1, tzinfo=UTC)
        assert audit_filter.until_iso == "2026-01-31T23:59:59.000000Z"


class TestValidation:
    def test_unknown_action(self, client, mock_engine):
        resp = client.get("/audit/logs", params={"action": "diagram.explode"})
        assert resp.status_code == 422
        mock_engine.query.assert_not_awaited()

    def test_anonymous_conflicts_with_actor(self, client):
        resp = client.get("/audit/logs", params={"anonymous": "true", "actor_id": "user-1"})
        assert resp.status_code == 422

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_limit_out_of_range(self, client, limit):
        resp = client.get("/audit/logs", params={"limit": limit})
        assert resp.status_code == 422


# ── Operational endpoints ────────────────────────────────────────────


class TestOperations:
    def test_stats(self, client):
        resp = client.get("/audit/stats")
        assert resp.status_code == 200
        body = resp.json()
        assert body["persistence"]["total_entries"] == 2
        assert body["persistence"]["pending_writes"] == 3
        assert body["memory"]["action_counts"] == {"diagram.update": 5}

    def test_flush(self, client, mock_engine):
        resp = client.post("/audit/flush")
        assert resp.status_code == 200
        assert resp.json() == {"written": 3}
        mock_engine.flush_now.assert_awaited_once()

    def test_cleanup(self, client):
        resp = client.post("/audit/cleanup")
        assert resp.json() == {"deleted": 12}

    def test_503_without_engine(self):
        test_app = FastAPI()
        test_app.include_router(router)
        resp = TestClient(test_app).get("/audit/recent")
        assert resp.status_code == 503


# ── Provenance ───────────────────────────────────────────────────────


def _request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


class TestProvenance:
    def test_first_forwarded_hop(self):
        request = _request({"X-Forwarded-For": " 203.0.113.7 , 10.0.0.1", "User-Agent": "Browser/1.0"})
        provenance = provenance_from_request(request)
        assert provenance.ip_address == "203.0.113.7"
        assert provenance.user_agent == "Browser/1.0"

    def test_falls_back_to_real_ip(self):
        provenance = provenance_from_request(_request({"X-Real-IP": "198.51.100.2"}))
        assert provenance.ip_address == "198.51.100.2"
        assert provenance.user_agent is None

    def test_blank_forwarded_for_uses_real_ip(self):
        provenance = provenance_from_request(_request({"X-Forwarded-For": " ", "X-Real-IP": "198.51.100.2"}))
        assert provenance.ip_address == "198.51.100.2"

    def test_no_headers(self):
        provenance = provenance_from_request(_request({}))
        assert provenance.ip_address is None
        assert provenance.user_agent is None


# ── Application integration ──────────────────────────────────────────


class TestApplication:
    """The real app: lifespan builds the engine, shutdown drains it."""

    @pytest.fixture
    def app_database(self, tmp_path, monkeypatch):
        from audit_trail.config import settings

        url = f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"
        monkeypatch.setattr(settings.db, "database_url", url)
        monkeypatch.setattr(settings.audit, "flush_interval_ms", 60_000)
        monkeypatch.setattr(settings.audit, "log_entries", False)
        return url

    def test_record_flush_and_query(self, app_database):
        from audit_trail.main import app

        with TestClient(app) as client:
            health = client.get("/health").json()
            assert health["status"] == "ok"

            engine = app.state.audit_engine
            engine.record(AuditAction.DIAGRAM_CREATE, "diagram-1", actor_id="user-1")
            engine.record(AuditAction.SHARE_ADD, "diagram-1", actor_id=None)
            assert client.get("/health").json()["pending_writes"] == 2

            assert client.post("/audit/flush").json() == {"written": 2}

            logs = client.get("/audit/logs", params={"anonymous": "true"}).json()
            assert [e["action"] for e in logs] == ["share.add"]
            assert len(client.get("/audit/recent").json()) == 2

    def test_shutdown_drains_pending(self, app_database):
        from audit_trail.main import app

        with TestClient(app):
            app.state.audit_engine.record(AuditAction.DIAGRAM_DELETE, "diagram-9")

        with TestClient(app) as client:
            logs = client.get("/audit/logs", params={"resource_id": "diagram-9"}).json()
            assert [e["action"] for e in logs] == ["diagram.delete"]
