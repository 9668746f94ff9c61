"""Stable coalescing keys for queued mutations."""
from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Any, Mapping, Optional

# checked in order; different entities name their identifier differently
IDENTIFIER_FIELDS = ("id", "key", "item_id", "order_id", "table_id")


def tag(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def extract_identifier(payload: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    for field in IDENTIFIER_FIELDS:
        value = payload.get(field)
        if value is None or value == "":
            continue
        return str(value)
    return None


def content_hash(payload: Any) -> str:
    canonical = json.dumps(
        payload if payload is not None else {},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def build_dedupe_key(entity: Any, action: Any, payload: Any) -> str:
    """Return ``entity:action:identifier``, or a content hash when no id is present.

    Identical payloads without an identifier still collapse onto one key.
    """

    identifier = extract_identifier(payload)
    if identifier is None:
        identifier = content_hash(payload)
    return f"{tag(entity)}:{tag(action)}:{identifier}"


__all__ = ["IDENTIFIER_FIELDS", "build_dedupe_key", "content_hash", "extract_identifier", "tag"]
