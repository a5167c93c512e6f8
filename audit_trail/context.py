"""Request provenance helpers — client IP and user agent for audit entries."""

from __future__ import annotations

from fastapi import Request

from audit_trail.schemas.audit import Provenance


def provenance_from_request(request: Request) -> Provenance:
    """Build audit provenance from request headers.

    IP comes from the first ``X-Forwarded-For`` hop, then ``X-Real-IP``.
    Missing or blank headers become None.
    """
    ip_address: str | None = None
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip() or None
    if ip_address is None:
        ip_address = request.headers.get("x-real-ip") or None

    return Provenance(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent") or None,
    )
