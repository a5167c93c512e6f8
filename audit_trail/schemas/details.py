"""Canonical codec for the free-form ``details`` payload of an audit entry.

Details are stored as compact, key-sorted JSON text. Every entry normalizes its
details through this codec when it is built, so the copy held in memory is
structurally identical to what comes back from the database later.

Encoded payloads larger than ``MAX_DETAILS_BYTES`` are replaced by a small
marker object instead of being stored.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

MAX_DETAILS_BYTES = 16_384

TRUNCATED_KEY = "_truncated"
ORIGINAL_BYTES_KEY = "_original_bytes"

_PREVIEW_CHARS = 50
_CONTEXT_CHARS = 100


def encode_details(details: dict[str, Any] | None) -> str | None:
    """Serialize details to their canonical JSON text (None stays None)."""
    if details is None:
        return None
    return json.dumps(
        _stringify_keys(details),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def _stringify_keys(value: Any) -> Any:
    """Coerce mapping keys to strings, as JSON does, so key sorting cannot fail."""
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value


def normalize_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip details through the codec and enforce the size bound.

    Values JSON cannot represent (datetimes, UUIDs, ...) come back as strings.
    """
    if details is None:
        return None

    encoded = encode_details(details)
    size = len(encoded.encode("utf-8"))  # type: ignore[union-attr]
    if size > MAX_DETAILS_BYTES:
        logger.warning(
            "Audit details too large (%d bytes, max %d), storing truncation marker",
            size,
            MAX_DETAILS_BYTES,
        )
        return {TRUNCATED_KEY: True, ORIGINAL_BYTES_KEY: size}

    return json.loads(encoded)  # type: ignore[arg-type]


def decode_details(blob: str | None, context: Any = None) -> dict[str, Any] | None:
    """Parse stored details; corrupt payloads yield None instead of raising.

    Only a short preview of the payload is logged, never the whole blob.
    """
    if blob is None:
        return None

    try:
        parsed = json.loads(blob)
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning(
            "Failed to parse audit entry details: %s (context=%s, preview=%r)",
            exc,
            str(context)[:_CONTEXT_CHARS],
            blob[:_PREVIEW_CHARS],
        )
        return None

    if not isinstance(parsed, dict):
        logger.warning(
            "Audit entry details is not an object (context=%s, preview=%r)",
            str(context)[:_CONTEXT_CHARS],
            blob[:_PREVIEW_CHARS],
        )
        return None

    return parsed
