"""Result values returned by the cart and inventory operations.

Domain failures are data, not exceptions: an operation hands back either a
plain record or a ``Failure`` naming what went wrong, and the HTTP layer
turns the failure into a status code.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_ARGUMENT = "invalid_argument"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
}


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.CONFLICT


@dataclass(frozen=True)
class Result:
    value: Any = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result":
        return cls(error=Failure(kind, message))


def http_status(error: Failure) -> int:
    """Map a failure to the status code the API answers with."""
    return _HTTP_STATUS.get(error.kind, 500)
