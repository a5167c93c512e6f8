"""SQLAlchemy ORM models for the audit trail.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from audit_trail.models.audit import AuditLog
from audit_trail.models.base import Base

__all__ = ["AuditLog", "Base"]
