"""Custom exception hierarchy for the Stratus access layer.

Every error maps to a stable ``(ErrorKind, message)`` pair that a transport
layer can translate into status codes.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import PurgeFailure, PurgeResult


RESOURCE_NOT_FOUND = "Resource not found"
"""Message shared by missing resources and concealed denials."""


class ErrorKind(str, Enum):
    """Stable error categories exposed to callers."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    PARTIAL_FAILURE = "partial_failure"


class StratusError(Exception):
    """Base exception for all Stratus errors."""

    kind: ErrorKind = ErrorKind.CONFLICT
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_tuple(self) -> tuple[ErrorKind, str]:
        return self.kind, self.message


class NotFoundError(StratusError):
    """Raised when a resource, link, or grant does not exist."""

    kind = ErrorKind.NOT_FOUND


class ForbiddenError(StratusError):
    """Raised when the resolved role does not permit the action."""

    kind = ErrorKind.FORBIDDEN


class ConflictError(StratusError):
    """Raised when a mutation would break a tree invariant (cycles, bad state)."""

    kind = ErrorKind.CONFLICT


class TransientError(StratusError):
    """Raised on store timeouts or unavailability. Safe to retry."""

    kind = ErrorKind.TRANSIENT
    retryable = True


class ResolutionError(TransientError):
    """Raised when role resolution cannot reach the store."""


class PartialFailureError(StratusError):
    """Raised when a purge cascade removed some but not all items."""

    kind = ErrorKind.PARTIAL_FAILURE

    def __init__(self, message: str, result: PurgeResult) -> None:
        super().__init__(message)
        self.result = result

    @property
    def failed(self) -> list[PurgeFailure]:
        return self.result.failed
