"""Audit trail engine for the diagram service.

Durable, queryable record of every security-relevant mutation: a bounded hot
cache for recent reads, batched transactional writes to SQLite, indexed
compliance queries and a retention sweeper.
"""

from audit_trail.engine import AuditEngine
from audit_trail.schemas.audit import (
    AuditAction,
    AuditEntry,
    AuditFilter,
    AuditStats,
    MemoryStats,
    Provenance,
    ResourceType,
)

__all__ = [
    "AuditAction",
    "AuditEngine",
    "AuditEntry",
    "AuditFilter",
    "AuditStats",
    "MemoryStats",
    "Provenance",
    "ResourceType",
]
