"""Audit log table and query indexes.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.Text(), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("resource_type", sa.String(32), nullable=False, comment="Derived from action"),
        sa.Column("resource_id", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Text()),
        sa.Column("actor_role", sa.String(50)),
        sa.Column("details", sa.Text()),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("created_at", sa.Text(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    # ── Indexes ────────────────────────────────────────────────────────

    op.create_index("idx_audit_timestamp", "audit_logs", [sa.text("timestamp DESC")])
    op.create_index("idx_audit_actor_id", "audit_logs", ["actor_id"])
    op.create_index("idx_audit_resource_id", "audit_logs", ["resource_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index(
        "idx_audit_resource_timestamp", "audit_logs", ["resource_id", sa.text("timestamp DESC")]
    )
    op.create_index(
        "idx_audit_actor_timestamp", "audit_logs", ["actor_id", sa.text("timestamp DESC")]
    )


def downgrade() -> None:
    op.drop_index("idx_audit_actor_timestamp", table_name="audit_logs")
    op.drop_index("idx_audit_resource_timestamp", table_name="audit_logs")
    op.drop_index("idx_audit_action", table_name="audit_logs")
    op.drop_index("idx_audit_resource_id", table_name="audit_logs")
    op.drop_index("idx_audit_actor_id", table_name="audit_logs")
    op.drop_index("idx_audit_timestamp", table_name="audit_logs")
    op.drop_table("audit_logs")
