"""
Failures — the single error vocabulary of the storefront.

Handlers never raise for expected outcomes; they return ``Error(Failure)``.
The HTTP layer maps ``Failure.kind`` to a status code in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum, auto


class ErrorKind(Enum):
    UNAUTHORIZED = auto()  # missing, invalid or expired credentials
    FORBIDDEN = auto()  # authenticated but not entitled
    NOT_FOUND = auto()
    INVALID_ARGUMENT = auto()  # malformed input
    CONFLICT = auto()  # uniqueness violation
    INVALID_STATE = auto()  # well-formed request the current state refuses
    INTERNAL = auto()


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INTERNAL: 500,
}


class DiscountRejection(StrEnum):
    """Why an existing discount code cannot be redeemed right now."""

    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"


@dataclass(frozen=True, slots=True)
class Failure:
    kind: ErrorKind
    message: str
    reason: str | None = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def __str__(self) -> str:
        return f"{self.kind.name}: {self.message}"


class Errors:
    @staticmethod
    def unauthorized(msg: str = "Unauthorized") -> Failure:
        return Failure(ErrorKind.UNAUTHORIZED, msg)

    @staticmethod
    def forbidden(msg: str) -> Failure:
        return Failure(ErrorKind.FORBIDDEN, msg)

    @staticmethod
    def not_found(msg: str) -> Failure:
        return Failure(ErrorKind.NOT_FOUND, msg)

    @staticmethod
    def invalid_argument(msg: str) -> Failure:
        return Failure(ErrorKind.INVALID_ARGUMENT, msg)

    @staticmethod
    def conflict(msg: str) -> Failure:
        return Failure(ErrorKind.CONFLICT, msg)

    @staticmethod
    def invalid_state(msg: str, reason: str | None = None) -> Failure:
        return Failure(ErrorKind.INVALID_STATE, msg, reason)

    @staticmethod
    def discount_rejected(reason: DiscountRejection, msg: str) -> Failure:
        return Failure(ErrorKind.INVALID_STATE, msg, reason.value)

    @staticmethod
    def internal(msg: str = "Internal server error") -> Failure:
        return Failure(ErrorKind.INTERNAL, msg)


__all__ = (
    "ErrorKind",
    "STATUS_CODES",
    "DiscountRejection",
    "Failure",
    "Errors",
)
