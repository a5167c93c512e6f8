"""AuditLog model — durable, append-only row per recorded audit entry.

Rows are only ever inserted by the batch persister and deleted by the
retention sweeper; nothing updates them. Timestamps are canonical ISO-8601
strings, so ordering by the text column is chronological.
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from audit_trail.models.base import Base


class AuditLog(Base):
    """Persisted audit entry."""

    __tablename__ = "audit_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[str] = mapped_column(Text, nullable=False)

    # What happened, to which resource
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(32), nullable=False, comment="Derived from action")
    resource_id: Mapped[str] = mapped_column(Text, nullable=False)

    # Who (both nullable: anonymous actions are allowed)
    actor_id: Mapped[str | None] = mapped_column(Text)
    actor_role: Mapped[str | None] = mapped_column(String(50))

    # Canonical JSON, see audit_trail.schemas.details
    details: Mapped[str | None] = mapped_column(Text)

    # Provenance
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[str] = mapped_column(Text, server_default=text("CURRENT_TIMESTAMP"))

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} action={self.action} resource={self.resource_id}>"


Index("idx_audit_timestamp", AuditLog.timestamp.desc())
Index("idx_audit_actor_id", AuditLog.actor_id)
Index("idx_audit_resource_id", AuditLog.resource_id)
Index("idx_audit_action", AuditLog.action)
# Common query shapes: one resource's history, one actor's activity report.
Index("idx_audit_resource_timestamp", AuditLog.resource_id, AuditLog.timestamp.desc())
Index("idx_audit_actor_timestamp", AuditLog.actor_id, AuditLog.timestamp.desc())
