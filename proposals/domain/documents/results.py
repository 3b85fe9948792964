"""
Typed operation results for the document lifecycle.

Core operations never raise for expected business conditions ("already
signed", "document locked", "link expired"). They return an OperationResult
and the HTTP layer maps the error kind to a status code.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    LINK_EXPIRED = "link_expired"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_ACTIONED = "already_actioned"
    VALIDATION = "validation"
    EXTERNAL_DEPENDENCY = "external_dependency"
    # Lost a concurrent-completion race: the document is completed, nothing to do
    CONFLICT = "conflict"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.LINK_EXPIRED: 410,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.ALREADY_ACTIONED: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.EXTERNAL_DEPENDENCY: 502,
    ErrorKind.CONFLICT: 200,
}


@dataclass
class OperationResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls, error: ErrorKind, message: str, details: Optional[dict[str, Any]] = None
    ) -> "OperationResult[T]":
        return cls(ok=False, error=error, message=message, details=details or {})

    @property
    def http_status(self) -> int:
        if self.ok or self.error is None:
            return 200
        return HTTP_STATUS_BY_KIND[self.error]


def not_found(message: str = "Document not found") -> OperationResult:
    # Also used when the caller lacks visibility, so existence is not leaked
    return OperationResult.failure(ErrorKind.NOT_FOUND, message)


def invalid_transition(message: str) -> OperationResult:
    return OperationResult.failure(ErrorKind.INVALID_TRANSITION, message)


def validation_error(message: str, **field_errors: str) -> OperationResult:
    return OperationResult.failure(ErrorKind.VALIDATION, message, {"fields": field_errors})
