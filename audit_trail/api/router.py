"""Admin audit API — FastAPI router over an AuditEngine.

The host application mounts this router and stores its engine on
``app.state.audit_engine``. Access control is the host's responsibility.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from audit_trail.engine import AuditEngine
from audit_trail.schemas.audit import AuditAction, AuditEntry, AuditFilter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])

MAX_PAGE_SIZE = 1000


def get_audit_engine(request: Request) -> AuditEngine:
    """Dependency resolving the engine attached to the running app."""
    engine = getattr(request.app.state, "audit_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Audit engine not available")
    return engine


def audit_filter_params(
    actor_id: str | None = Query(default=None, description="Only entries by this actor"),
    anonymous: bool = Query(default=False, description="Only entries without an actor"),
    action: AuditAction | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    since: datetime | None = Query(default=None, description="Inclusive lower bound"),
    until: datetime | None = Query(default=None, description="Inclusive upper bound"),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
) -> AuditFilter:
    """Translate query parameters into an AuditFilter."""
    if anonymous and actor_id is not None:
        raise HTTPException(status_code=422, detail="actor_id and anonymous are mutually exclusive")

    fields: dict[str, Any] = {
        "action": action,
        "resource_id": resource_id,
        "since": since,
        "until": until,
        "limit": limit,
    }
    # Setting actor_id (even to None) is what turns the actor filter on.
    if anonymous:
        fields["actor_id"] = None
    elif actor_id is not None:
        fields["actor_id"] = actor_id
    return AuditFilter(**fields)


@router.get("/recent", response_model=list[AuditEntry])
async def recent_entries(
    audit_filter: AuditFilter = Depends(audit_filter_params),
    engine: AuditEngine = Depends(get_audit_engine),
) -> list[AuditEntry]:
    """Recent activity from the in-memory cache."""
    return engine.recent(audit_filter)


@router.get("/logs", response_model=list[AuditEntry])
async def query_entries(
    audit_filter: AuditFilter = Depends(audit_filter_params),
    engine: AuditEngine = Depends(get_audit_engine),
) -> list[AuditEntry]:
    """Full retained history from the database (default limit 100)."""
    return await engine.query(audit_filter)


@router.get("/stats")
async def audit_stats(engine: AuditEngine = Depends(get_audit_engine)) -> dict[str, Any]:
    """Persistence and hot-cache statistics."""
    persistence = await engine.stats()
    return {
        "persistence": persistence.model_dump(),
        "memory": engine.memory_stats().model_dump(),
    }


@router.post("/flush")
async def flush_entries(engine: AuditEngine = Depends(get_audit_engine)) -> dict[str, int]:
    """Write one pending batch now."""
    written = await engine.flush_now()
    logger.info("Manual audit flush wrote %d entries", written)
    return {"written": written}


@router.post("/cleanup")
async def cleanup_entries(engine: AuditEngine = Depends(get_audit_engine)) -> dict[str, int]:
    """Run the retention sweep now."""
    deleted = await engine.cleanup_now()
    return {"deleted": deleted}
