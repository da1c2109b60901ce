"""Error taxonomy for the Planner backend.

Invariants:
    - Every service failure is a PlannerError with a machine-readable kind
    - Messages never carry store driver detail; the driver exception is
      chained with ``raise ... from`` and logged server side
    - to_response() produces the wire envelope; from_response() rebuilds
      the same exception class on the client side

StoreError is the only exception stores are allowed to raise. Services
translate it into InternalError.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure classes visible to callers."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class PlannerError(Exception):
    """Base exception for all caller-visible failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        """Convert to the wire error envelope."""
        return {"error": {"kind": self.kind.value, "message": self.message}}

    @staticmethod
    def from_response(payload: Any) -> "PlannerError":
        """Rebuild a typed error from a wire envelope.

        Unrecognized or malformed envelopes become InternalError.
        """
        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            return InternalError("malformed error response")
        message = str(error.get("message", ""))
        try:
            kind = ErrorKind(error.get("kind"))
        except ValueError:
            return InternalError(message or "unknown error")
        return _ERRORS_BY_KIND[kind](message)


class InvalidArgumentError(PlannerError):
    """Malformed or missing required input. Not retryable as-is."""

    kind = ErrorKind.INVALID_ARGUMENT
    http_status = 400


class NotFoundError(PlannerError):
    """The referenced entity, or its parent, does not exist."""

    kind = ErrorKind.NOT_FOUND
    http_status = 404


class InternalError(PlannerError):
    """Store or transport failure. Safe to retry after backoff."""

    kind = ErrorKind.INTERNAL
    http_status = 500


class DeadlineExceededError(PlannerError):
    """The caller's deadline expired before the call completed."""

    kind = ErrorKind.DEADLINE_EXCEEDED
    http_status = 504


_ERRORS_BY_KIND: dict[ErrorKind, type[PlannerError]] = {
    cls.kind: cls
    for cls in (InvalidArgumentError, NotFoundError, InternalError, DeadlineExceededError)
}


class StoreError(Exception):
    """Raised by store adapters when the underlying database fails."""

    def __init__(self, operation: str, kind: str, message: str = ""):
        detail = f"{operation} {kind} failed"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)
        self.operation = operation
        self.kind = kind
