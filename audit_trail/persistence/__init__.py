"""Audit persistence — hot cache, write queue, batch persister, store, retention."""

from audit_trail.persistence.cache import HotCache
from audit_trail.persistence.persister import BatchPersister, WriteQueue
from audit_trail.persistence.retention import RetentionSweeper
from audit_trail.persistence.store import AuditStore

__all__ = ["AuditStore", "BatchPersister", "HotCache", "RetentionSweeper", "WriteQueue"]
