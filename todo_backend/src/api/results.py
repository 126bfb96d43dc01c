from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Categories of business failures and the HTTP status each maps to."""

    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self]

    @property
    def label(self) -> str:
        return _LABEL_BY_STATUS[self.status_code]


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INTERNAL: 500,
}

_LABEL_BY_STATUS = {
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    500: "Internal Server Error",
}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class ServiceError:
    """
    A typed business failure.

    Fields:
    - kind: error category, determines the HTTP status
    - message: human-readable message safe to show to the caller
    - reason: short machine-oriented tag for logs (never sent to the caller)
    """

    kind: ErrorKind
    message: str
    reason: str = ""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ServiceError

    @property
    def is_ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def validation_error(message: str, reason: str = "validation") -> Err:
    return Err(ServiceError(ErrorKind.VALIDATION, message, reason))


def authentication_error(message: str, reason: str) -> Err:
    return Err(ServiceError(ErrorKind.AUTHENTICATION, message, reason))


def not_found(message: str, reason: str = "not-found") -> Err:
    return Err(ServiceError(ErrorKind.NOT_FOUND, message, reason))


def conflict(message: str, reason: str = "conflict") -> Err:
    return Err(ServiceError(ErrorKind.CONFLICT, message, reason))


def internal_error(reason: str) -> Err:
    return Err(ServiceError(ErrorKind.INTERNAL, "Internal Server Error", reason))
