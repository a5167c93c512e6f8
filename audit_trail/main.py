"""FastAPI application entry point — serves the admin audit API.

Usage:
    python -m audit_trail.main

The lifespan builds one AuditEngine from settings, initializes it (hot cache
hydration + flush timer) and drains it on shutdown.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from audit_trail.api.router import router as audit_router
from audit_trail.config import settings
from audit_trail.engine import AuditEngine
from audit_trail.persistence.store import AuditStore

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting audit service (env=%s)", settings.environment)

    engine = AuditEngine(settings.audit, AuditStore.from_url(settings.db.url))
    async with engine.lifespan():
        app.state.audit_engine = engine
        logger.info("Audit engine ready")
        try:
            yield
        finally:
            logger.info("Shutting down audit service...")
            app.state.audit_engine = None

    logger.info("Audit service shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Audit Trail API",
    description="Durable, queryable audit trail for the diagram service",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(audit_router)


@app.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint; pending_writes should be monitored for growth."""
    engine: AuditEngine | None = getattr(app.state, "audit_engine", None)
    return {
        "status": "ok" if engine is not None else "starting",
        "environment": settings.environment,
        "pending_writes": engine.pending_writes if engine is not None else 0,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "audit_trail.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
