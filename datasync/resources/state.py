"""Resource snapshots and the shared bookkeeping behind every loader."""

from __future__ import annotations

import copy
import inspect
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, TypeVar

from datasync.config import SyncSettings, get_settings
from datasync.execution import BackoffRetryExecutor, CancellableOperation, CancellationToken, RetryConfig

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SuccessCallback = Callable[[Any], Any]
ErrorCallback = Callable[[str], Any]
CheckEmpty = Callable[[Any], bool]
Fetcher = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_check_empty(data: Any) -> bool:
    if isinstance(data, (list, tuple)):
        return len(data) == 0
    return data is None


def mapping_check_empty(data: Optional[Mapping[str, Any]]) -> bool:
    return not data


@dataclass(frozen=True)
class ResourceState(Generic[T]):
    """Immutable snapshot handed to views."""

    data: Optional[T] = None
    loading: bool = False
    error: Optional[str] = None
    is_empty: bool = False
    last_updated: Optional[datetime] = None
    retry_count: int = 0
    generation: int = 0


@dataclass(frozen=True)
class LoadOptions:
    skip_retry: bool = False
    show_loading_state: bool = True
    preserve_data: bool = False
    # None falls back to SyncSettings.load_timeout_ms; 0 or less disables the deadline.
    timeout_ms: Optional[int] = None


class StatefulResource(Generic[T]):
    """Owns one snapshot, its generation counter and the lifecycle callbacks."""

    def __init__(
        self,
        *,
        initial_data: Optional[T] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        check_empty: CheckEmpty = default_check_empty,
        retry_config: Optional[RetryConfig] = None,
        settings: Optional[SyncSettings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._initial_data = initial_data
        self._on_success = on_success
        self._on_error = on_error
        self._check_empty = check_empty
        self._retry_config = retry_config or self._settings.retry_config()
        self._state: ResourceState[T] = ResourceState(data=copy.copy(initial_data))

    @property
    def state(self) -> ResourceState[T]:
        return self._state

    @property
    def data(self) -> Optional[T]:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def is_empty(self) -> bool:
        return self._state.is_empty

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._state.last_updated

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def generation(self) -> int:
        return self._state.generation

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    def _update(self, **changes: Any) -> ResourceState[T]:
        self._state = replace(self._state, **changes)
        return self._state

    def _next_generation(self) -> int:
        generation = self._state.generation + 1
        self._update(generation=generation)
        return generation

    def _is_current(self, generation: int) -> bool:
        return self._state.generation == generation

    def _resolve_timeout(self, options: LoadOptions) -> int:
        if options.timeout_ms is None:
            return self._settings.load_timeout_ms
        return options.timeout_ms

    def _restore_initial(self) -> None:
        self._state = ResourceState(
            data=copy.copy(self._initial_data),
            generation=self._state.generation + 1,
        )

    def _commit_data(self, data: Optional[T], **extra: Any) -> None:
        self._update(
            data=data,
            is_empty=self._check_empty(data),
            last_updated=_utcnow(),
            **extra,
        )

    @staticmethod
    def _cancel_operation(operation: Optional[CancellableOperation[Any]], reason: str) -> None:
        if operation is not None:
            operation.cancel(reason)

    async def _notify(self, callback: Optional[Callable[[Any], Any]], value: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress resource lifecycle callback error", exc_info=True)

    def _build_unit(self, fetcher: Fetcher, options: LoadOptions) -> Callable[[CancellationToken], Awaitable[Any]]:
        """Wrap `fetcher` for a `CancellableOperation`, retrying unless skipped."""

        async def _guarded_fetch(token: CancellationToken) -> Any:
            token.raise_if_cancelled()
            value = await fetcher()
            token.raise_if_cancelled()
            return value

        async def _unit(token: CancellationToken) -> Any:
            if options.skip_retry:
                return await _guarded_fetch(token)
            executor = BackoffRetryExecutor(self._retry_config)
            outcome = await executor.run(lambda: _guarded_fetch(token), cancel_token=token)
            return outcome.unwrap()

        return _unit
