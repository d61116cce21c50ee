"""Error taxonomy and settled-operation outcomes."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


class DataSyncError(RuntimeError):
    """Base class for failures raised by the datasync primitives."""

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class OperationCancelledError(DataSyncError):
    """Raised when a unit of work observes its cancellation token."""

    def __init__(self, message: str = "Operation was cancelled") -> None:
        super().__init__(message, code="cancelled")


class OperationTimeoutError(DataSyncError):
    """Raised when an operation loses the race against its deadline."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Operation timeout after {timeout_ms}ms", code="deadline-exceeded")
        self.timeout_ms = timeout_ms


class ErrorKind(enum.Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    AGGREGATE = "aggregate"


def error_message(exc: BaseException) -> str:
    """Return the user-facing message of an exception."""

    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or UNKNOWN_ERROR_MESSAGE


def error_code(exc: BaseException) -> Optional[str]:
    code = getattr(exc, "code", None)
    if code is None:
        return None
    return str(code)


def is_retryable_error(exc: Optional[BaseException], tags: Iterable[str]) -> bool:
    """Match the error text, code and message against the transient tags."""

    if exc is None:
        return False
    if isinstance(exc, OperationCancelledError):
        return False
    haystacks = (
        f"{type(exc).__name__}: {exc}".lower(),
        (error_code(exc) or "").lower(),
        str(getattr(exc, "message", "") or "").lower(),
    )
    return any(tag.lower() in text for tag in tags for text in haystacks if text)


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    message: str
    code: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException, tags: Iterable[str] = ()) -> ErrorInfo:
        if isinstance(exc, OperationCancelledError):
            kind = ErrorKind.CANCELLED
        elif isinstance(exc, OperationTimeoutError):
            kind = ErrorKind.TIMEOUT
        elif is_retryable_error(exc, tags):
            kind = ErrorKind.TRANSIENT
        else:
            kind = ErrorKind.FATAL
        return cls(kind=kind, message=error_message(exc), code=error_code(exc))


@dataclass(frozen=True)
class OperationOutcome(Generic[T]):
    """Result of a retried operation; `value` is meaningful only on success."""

    success: bool
    attempts: int
    value: Optional[T] = None
    error: Optional[ErrorInfo] = None
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be positive")
        if not self.success and self.error is None:
            raise ValueError("failed outcomes require error info")

    @classmethod
    def succeeded(cls, value: T, attempts: int) -> OperationOutcome[T]:
        return cls(success=True, attempts=attempts, value=value)

    @classmethod
    def failed(cls, exc: BaseException, attempts: int, tags: Iterable[str] = ()) -> OperationOutcome[Any]:
        return cls(
            success=False,
            attempts=attempts,
            error=ErrorInfo.from_exception(exc, tags),
            exception=exc,
        )

    def unwrap(self) -> T:
        """Return the value or re-raise the failure."""

        if self.success:
            return self.value  # type: ignore[return-value]
        if self.exception is not None:
            raise self.exception
        raise DataSyncError(self.error.message if self.error else UNKNOWN_ERROR_MESSAGE)
