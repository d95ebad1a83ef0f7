"""
Error taxonomy for the delivery core.

Business-rule violations are values, not exceptions: operations return a
``Result`` whose ``error`` names the ``ErrorKind`` plus a message specific
enough for the UI to act on. Only ``InfrastructureError`` is raised, for the
cases where the system can no longer reason about current state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    NOT_FOUND = "NotFound"
    INVALID_TRANSITION = "InvalidTransition"
    PAYMENT_REQUIRED = "PaymentRequired"
    CHECKLIST_INCOMPLETE = "ChecklistIncomplete"
    UNRESOLVED_FEEDBACK = "UnresolvedFeedback"
    QUOTA_EXCEEDED = "QuotaExceeded"
    INVALID_STATUS_TRANSITION = "InvalidStatusTransition"
    CONFLICT = "Conflict"
    INFRASTRUCTURE = "Infrastructure"


class InfrastructureError(Exception):
    """Store, lock or third-party failure; state can no longer be trusted."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INFRASTRUCTURE):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, **details: Any
    ) -> "Result[T]":
        return cls(error=Failure(kind=kind, message=message, details=details))

    def unwrap(self) -> T:
        """Return the value; only for callers that already checked ``ok``."""
        if self.error is not None:
            raise ValueError(f"{self.error.kind.value}: {self.error.message}")
        return self.value
