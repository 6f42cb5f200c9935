"""Error taxonomy and the tagged result type shared by every layer.

Errors are exceptions so they carry tracebacks while inside the client,
but they cross public boundaries as values inside a :class:`Result`.
Callers branch on ``error.kind``, never on the exception class alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Failure variants surfaced by the read and write paths."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    VALIDATION_REJECTED = "validation_rejected"


class SyncError(Exception):
    """Base error for remote content operations."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        code: str = "",
        field_errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.code = code
        self.field_errors = dict(field_errors or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for logging and JSON reports."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
        }
        if self.code:
            data["code"] = self.code
        if self.field_errors:
            data["field_errors"] = dict(self.field_errors)
        return data

    def __str__(self) -> str:
        parts = [f"{self.kind.value}: {self.message}"]
        if self.status is not None:
            parts.append(f"(HTTP {self.status})")
        if self.field_errors:
            fields = ", ".join(f"{k}={v}" for k, v in sorted(self.field_errors.items()))
            parts.append(f"[{fields}]")
        return " ".join(parts)


class FetchError(SyncError):
    """A read operation failed."""

    def __init__(self, kind: ErrorKind, message: str, **kwargs: Any) -> None:
        if kind == ErrorKind.VALIDATION_REJECTED:
            raise ValueError("validation_rejected is a write-only error kind")
        super().__init__(kind, message, **kwargs)


class WriteError(SyncError):
    """A create or update operation failed."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a :class:`SyncError`, never both."""

    value: T | None = None
    error: SyncError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
