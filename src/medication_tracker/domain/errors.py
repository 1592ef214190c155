"""Error taxonomy and the result type returned by repositories."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Category of a failed repository operation."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORE = "store"


class RepositoryError(Exception):
    """Base class for failures reported through ``OperationResult``."""

    kind: ErrorKind = ErrorKind.STORE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RepositoryError):
    """Input rejected before any write happened."""

    kind = ErrorKind.VALIDATION


class NotFoundError(RepositoryError):
    """The targeted record does not exist."""

    kind = ErrorKind.NOT_FOUND


class StoreError(RepositoryError):
    """The underlying store failed."""

    kind = ErrorKind.STORE


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Either a success value or a typed error, never both."""

    value: T | None = None
    error: RepositoryError | None = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: RepositoryError) -> "OperationResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_pair(self) -> tuple[ErrorKind, str] | None:
        """Return ``(kind, message)`` for failures, ``None`` on success."""
        if self.error is None:
            return None
        return self.error.kind, self.error.message

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
