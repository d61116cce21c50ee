"""Execution primitives: retry/backoff, cancellation and deadlines."""

from .cancellation import CancellableOperation, CancellationToken
from .outcome import (
    DataSyncError,
    ErrorInfo,
    ErrorKind,
    OperationCancelledError,
    OperationOutcome,
    OperationTimeoutError,
    is_retryable_error,
)
from .retry import BackoffRetryExecutor, RetryConfig, compute_delay, retry_or_raise, retry_with_timeout
from .timeout import with_deadline

__all__ = [
    "BackoffRetryExecutor",
    "CancellableOperation",
    "CancellationToken",
    "DataSyncError",
    "ErrorInfo",
    "ErrorKind",
    "OperationCancelledError",
    "OperationOutcome",
    "OperationTimeoutError",
    "RetryConfig",
    "compute_delay",
    "is_retryable_error",
    "retry_or_raise",
    "retry_with_timeout",
    "with_deadline",
]
