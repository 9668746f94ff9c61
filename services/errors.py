"""Error types shared by the outbox engine."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    TRANSIENT = "TRANSIENT"
    SAFE_CONFLICT = "SAFE_CONFLICT"
    UNKNOWN_OPERATION = "UNKNOWN_OPERATION"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    PERMANENTLY_FAILED = "PERMANENTLY_FAILED"


class RemoteError(Exception):
    """Failure reported by a remote handler.

    ``status`` is the HTTP-like status when the transport has one, ``code`` a
    service specific error code.
    """

    def __init__(self, message: str = "", *, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __str__(self) -> str:
        parts = []
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.code:
            parts.append(f"code={self.code}")
        if self.message:
            parts.append(self.message)
        return " ".join(parts) or self.__class__.__name__


class RoutingError(Exception):
    """The routing table is missing a handler or registers one twice."""


__all__ = ["ErrorKind", "RemoteError", "RoutingError"]
