"""Classify remote failures that prove the mutation was already applied."""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

CONFLICT_STATUS = {409}

ALREADY_APPLIED_CODES = {
    "ALREADY_EXISTS",
    "CONFLICT",
    "DUPLICATE",
    "DUPLICATE_KEY",
    "UNIQUE_VIOLATION",
    "23505",  # postgres unique_violation
    "ER_DUP_ENTRY",
    "SQLITE_CONSTRAINT_UNIQUE",
}

_ALREADY_APPLIED_RE = re.compile(
    r"already (exists|applied|processed)|duplicate (key|entry)|unique constraint|uniqueness",
    re.IGNORECASE,
)


def _lookup(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def error_status(error: Any) -> Optional[int]:
    candidates = [
        _lookup(error, "status"),
        _lookup(error, "status_code"),
    ]
    for holder in ("resp", "response"):
        inner = _lookup(error, holder)
        if inner is not None:
            candidates.append(_lookup(inner, "status"))
            candidates.append(_lookup(inner, "status_code"))
    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def error_code(error: Any) -> Optional[str]:
    value = _lookup(error, "code")
    if value is None or value == "":
        return None
    return str(value)


def error_message(error: Any) -> str:
    value = _lookup(error, "message")
    if value:
        return str(value)
    if isinstance(error, Mapping):
        return str(error.get("error") or "")
    return str(error) if error is not None else ""


def is_safe_conflict(error: Any) -> bool:
    """Return ``True`` when ``error`` means the remote side already has the effect."""

    if error is None:
        return False
    if error_status(error) in CONFLICT_STATUS:
        return True
    code = error_code(error)
    if code and code.upper() in ALREADY_APPLIED_CODES:
        return True
    return bool(_ALREADY_APPLIED_RE.search(error_message(error)))


def describe(error: Any) -> str:
    text = str(error) if error is not None else ""
    if isinstance(error, BaseException):
        text = f"{error.__class__.__name__}: {text}" if text else error.__class__.__name__
    return text[:1000]


__all__ = [
    "ALREADY_APPLIED_CODES",
    "CONFLICT_STATUS",
    "describe",
    "error_code",
    "error_message",
    "error_status",
    "is_safe_conflict",
]
