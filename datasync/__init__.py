"""Resilient asyncio data synchronization for dashboard views."""

from datasync.config import SyncSettings, get_settings
from datasync.execution import (
    BackoffRetryExecutor,
    CancellableOperation,
    CancellationToken,
    ErrorInfo,
    ErrorKind,
    OperationCancelledError,
    OperationOutcome,
    OperationTimeoutError,
    RetryConfig,
    with_deadline,
)
from datasync.resources import (
    AsyncResourceState,
    LoadOptions,
    MultiSourceAggregator,
    ResourceState,
    SubscriptionRegistry,
)

__all__ = [
    "AsyncResourceState",
    "BackoffRetryExecutor",
    "CancellableOperation",
    "CancellationToken",
    "ErrorInfo",
    "ErrorKind",
    "LoadOptions",
    "MultiSourceAggregator",
    "OperationCancelledError",
    "OperationOutcome",
    "OperationTimeoutError",
    "ResourceState",
    "RetryConfig",
    "SubscriptionRegistry",
    "SyncSettings",
    "get_settings",
    "with_deadline",
]
