"""Audit entry schema — the immutable record of one security-relevant mutation.

Every mutation in the diagram service (create, share, ownership transfer, ...)
produces one AuditEntry. Entries are copied into the hot cache and the write
queue when recorded and end up as rows in the ``audit_logs`` table.
"""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field, field_validator

from audit_trail.schemas.details import normalize_details


class AuditAction(str, Enum):
    """Closed set of auditable, resource-scoped verbs."""

    # Diagrams
    DIAGRAM_CREATE = "diagram.create"
    DIAGRAM_UPDATE = "diagram.update"
    DIAGRAM_DELETE = "diagram.delete"
    DIAGRAM_FORK = "diagram.fork"
    DIAGRAM_RESTORE = "diagram.restore"
    DIAGRAM_APPLY_LAYOUT = "diagram.apply_layout"
    DIAGRAM_APPLY_THEME = "diagram.apply_theme"
    DIAGRAM_RUN_AGENT = "diagram.run_agent"
    DIAGRAM_THUMBNAIL_UPDATE = "diagram.thumbnail_update"

    # Sharing
    SHARE_ADD = "share.add"
    SHARE_REMOVE = "share.remove"

    # Ownership & visibility
    OWNERSHIP_TRANSFER = "ownership.transfer"
    VISIBILITY_CHANGE = "visibility.change"


class ResourceType(str, Enum):
    """Kind of resource an action applies to."""

    DIAGRAM = "diagram"
    SHARE = "share"
    OWNERSHIP = "ownership"


RESOURCE_TYPE_BY_ACTION: dict[AuditAction, ResourceType] = {
    AuditAction.DIAGRAM_CREATE: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_UPDATE: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_DELETE: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_FORK: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_RESTORE: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_APPLY_LAYOUT: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_APPLY_THEME: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_RUN_AGENT: ResourceType.DIAGRAM,
    AuditAction.DIAGRAM_THUMBNAIL_UPDATE: ResourceType.DIAGRAM,
    AuditAction.SHARE_ADD: ResourceType.SHARE,
    AuditAction.SHARE_REMOVE: ResourceType.SHARE,
    AuditAction.OWNERSHIP_TRANSFER: ResourceType.OWNERSHIP,
    # Visibility is a property of the diagram itself.
    AuditAction.VISIBILITY_CHANGE: ResourceType.DIAGRAM,
}

_unmapped = set(AuditAction) - set(RESOURCE_TYPE_BY_ACTION)
if _unmapped:
    msg = f"Audit actions without a resource type: {sorted(a.value for a in _unmapped)}"
    raise RuntimeError(msg)


def resource_type_for(action: AuditAction) -> ResourceType:
    """Resource type an action applies to."""
    return RESOURCE_TYPE_BY_ACTION[action]


def is_valid_audit_action(value: str | None) -> bool:
    """Check whether an untrusted string names a known AuditAction."""
    if value is None:
        return False
    try:
        AuditAction(value)
    except ValueError:
        return False
    return True


# ── Timestamps ───────────────────────────────────────────────────────


def format_timestamp(value: datetime) -> str:
    """Canonical UTC form, e.g. ``2026-01-20T10:00:00.000000Z``.

    Fixed width, so lexical order of two canonical strings is chronological
    order. Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """Parse any ISO-8601 string (``Z`` or offset suffix) into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def utc_now_iso() -> str:
    """Current time in canonical form."""
    return format_timestamp(datetime.now(UTC))


# ── Models ───────────────────────────────────────────────────────────


class Provenance(BaseModel):
    """Optional request metadata attached to an entry for forensic context."""

    ip_address: str | None = None
    user_agent: str | None = None

    model_config = {"frozen": True}


class AuditEntry(BaseModel):
    """One audit record. Immutable once created.

    ``resource_type`` is derived from ``action`` and cannot be set
    independently.
    """

    timestamp: str = Field(default_factory=utc_now_iso)
    action: AuditAction
    actor_id: str | None = None
    actor_role: str | None = None
    resource_id: str = Field(min_length=1)
    details: dict[str, Any] | None = None

    # Provenance
    ip_address: str | None = None
    user_agent: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalize_timestamp(cls, v: Any) -> str:
        """Accept datetimes or ISO-8601 strings; store the canonical form."""
        if isinstance(v, datetime):
            return format_timestamp(v)
        if isinstance(v, str):
            return format_timestamp(parse_timestamp(v))
        msg = f"Invalid timestamp: {v!r}"
        raise ValueError(msg)

    @field_validator("details", mode="before")
    @classmethod
    def normalize_details_payload(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return normalize_details(v)
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resource_type(self) -> ResourceType:
        return resource_type_for(self.action)


class AuditFilter(BaseModel):
    """Conjunctive filter shared by the hot-cache and durable read paths.

    ``actor_id`` left unset means "any actor"; passing ``actor_id=None``
    explicitly selects anonymous entries only.
    """

    actor_id: str | None = None
    action: AuditAction | None = None
    resource_id: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = Field(default=None, ge=1)

    @property
    def filters_actor(self) -> bool:
        return "actor_id" in self.model_fields_set

    @property
    def since_iso(self) -> str | None:
        return format_timestamp(self.since) if self.since is not None else None

    @property
    def until_iso(self) -> str | None:
        return format_timestamp(self.until) if self.until is not None else None

    def matches(self, entry: AuditEntry) -> bool:
        """In-memory equivalent of the SQL WHERE clause built by the store."""
        if self.filters_actor and entry.actor_id != self.actor_id:
            return False
        if self.action is not None and entry.action != self.action:
            return False
        if self.resource_id is not None and entry.resource_id != self.resource_id:
            return False
        since = self.since_iso
        if since is not None and entry.timestamp < since:
            return False
        until = self.until_iso
        if until is not None and entry.timestamp > until:
            return False
        return True


class AuditStats(BaseModel):
    """Persistence-side statistics."""

    total_entries: int
    oldest_entry: str | None
    newest_entry: str | None
    pending_writes: int
    cache_size: int


class MemoryStats(BaseModel):
    """Statistics computed over the hot cache only."""

    total_entries: int
    action_counts: dict[str, int]
    unique_actors: int

    @classmethod
    def from_entries(cls, entries: list[AuditEntry]) -> MemoryStats:
        counts = Counter(entry.action.value for entry in entries)
        return cls(
            total_entries=len(entries),
            action_counts=dict(counts),
            unique_actors=len({entry.actor_id for entry in entries}),
        )
