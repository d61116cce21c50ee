"""Single-resource loader with retry, deadline and staleness discipline.

Every `load` bumps the generation counter and captures it. When the composite
operation settles, its result is committed only if no newer `load` or `reset`
happened in between; otherwise it is dropped without touching state or
invoking callbacks. Cancellation of the superseded operation is cooperative,
so the generation check is what actually keeps results in order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, TypeVar

from datasync.config import SyncSettings
from datasync.execution import (
    CancellableOperation,
    OperationCancelledError,
    OperationTimeoutError,
    RetryConfig,
    with_deadline,
)
from datasync.execution.outcome import error_message
from datasync.resources.state import (
    Fetcher,
    CheckEmpty,
    ErrorCallback,
    LoadOptions,
    StatefulResource,
    SuccessCallback,
    default_check_empty,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ERROR_MARKER = "network"


class AsyncResourceState(StatefulResource[T]):
    """Loads one remote value into a `ResourceState` snapshot."""

    def __init__(
        self,
        *,
        initial_data: Optional[T] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        check_empty: Optional[CheckEmpty] = None,
        auto_retry: Optional[bool] = None,
        retry_delay_ms: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        settings: Optional[SyncSettings] = None,
    ) -> None:
        super().__init__(
            initial_data=initial_data,
            on_success=on_success,
            on_error=on_error,
            check_empty=check_empty or default_check_empty,
            retry_config=retry_config,
            settings=settings,
        )
        self._auto_retry = self._settings.auto_retry if auto_retry is None else auto_retry
        self._retry_delay_ms = self._settings.auto_retry_delay_ms if retry_delay_ms is None else retry_delay_ms
        self._last_fetcher: Optional[Fetcher] = None
        self._operation: Optional[CancellableOperation[T]] = None
        self._auto_retry_task: Optional[asyncio.Task[None]] = None

    @property
    def has_pending_auto_retry(self) -> bool:
        return self._auto_retry_task is not None and not self._auto_retry_task.done()

    async def load(self, fetcher: Fetcher, options: Optional[LoadOptions] = None) -> None:
        """Fetch and commit a fresh value; failures land in `state.error`."""

        options = options or LoadOptions()
        self._cancel_in_flight("superseded by a newer load")
        self._last_fetcher = fetcher

        generation = self._next_generation()
        self._update(
            loading=options.show_loading_state,
            error=None,
            data=self._state.data if options.preserve_data else None,
        )

        operation: CancellableOperation[T] = CancellableOperation(self._build_unit(fetcher, options))
        self._operation = operation
        timeout_ms = self._resolve_timeout(options)

        try:
            result = await with_deadline(operation.execute, timeout_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, OperationTimeoutError):
                operation.cancel("deadline exceeded")
            await self._settle_failure(generation, exc, fetcher, options)
            return
        finally:
            if self._operation is operation:
                self._operation = None

        await self._settle_success(generation, result)

    async def reload(self) -> None:
        """Repeat the last load, keeping current data visible meanwhile."""

        if self._last_fetcher is None:
            LOGGER.warning("No fetcher available for reload")
            return
        await self.load(self._last_fetcher, LoadOptions(preserve_data=True))

    def reset(self) -> None:
        self._cancel_in_flight("resource reset")
        self._restore_initial()

    def set_data(self, data: Optional[T]) -> None:
        self._commit_data(data, error=None)

    def set_error(self, message: Optional[str]) -> None:
        self._update(error=message, loading=False)

    def clear_error(self) -> None:
        self._update(error=None)

    def mark_loading(self) -> None:
        self._update(loading=True, error=None)

    def apply_push(self, data: Optional[T]) -> None:
        """Commit a value delivered by a realtime subscription."""

        self._commit_data(
            data,
            loading=False,
            error=None,
            retry_count=self._state.retry_count + 1,
        )

    def record_failure(self, message: str) -> None:
        self._update(
            loading=False,
            error=message,
            retry_count=self._state.retry_count + 1,
        )

    async def close(self) -> None:
        """Stop in-flight work; the snapshot is left as it is."""

        task = self._auto_retry_task
        self._cancel_in_flight("resource closed")
        self._next_generation()
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _cancel_in_flight(self, reason: str) -> None:
        self._cancel_operation(self._operation, reason)
        self._operation = None
        if self._auto_retry_task is not None:
            if self._auto_retry_task is not asyncio.current_task():
                self._auto_retry_task.cancel()
            self._auto_retry_task = None

    async def _settle_success(self, generation: int, result: T) -> None:
        if not self._is_current(generation):
            LOGGER.debug("Discarding stale load result (generation %s, current %s)", generation, self.generation)
            return
        self._commit_data(
            result,
            loading=False,
            error=None,
            retry_count=self._state.retry_count + 1,
        )
        await self._notify(self._on_success, result)

    async def _settle_failure(self, generation: int, exc: Exception, fetcher: Fetcher, options: LoadOptions) -> None:
        if not self._is_current(generation):
            LOGGER.debug("Discarding stale load failure (generation %s): %s", generation, exc)
            return
        if isinstance(exc, OperationCancelledError):
            LOGGER.debug("Load cancelled without a newer generation; leaving state untouched")
            return

        message = error_message(exc)
        self.record_failure(message)
        LOGGER.error("Resource loading error: %s", message, exc_info=exc)
        await self._notify(self._on_error, message)

        if self._auto_retry and NETWORK_ERROR_MARKER in message and self._retry_delay_ms > 0:
            self._schedule_auto_retry(fetcher, options)

    def _schedule_auto_retry(self, fetcher: Fetcher, options: LoadOptions) -> None:
        delay = self._retry_delay_ms / 1000.0

        async def _deferred_load() -> None:
            await asyncio.sleep(delay)
            LOGGER.info("Auto-retrying failed load after network error")
            self._auto_retry_task = None
            await self.load(fetcher, options)

        self._auto_retry_task = asyncio.create_task(_deferred_load(), name="datasync-auto-retry")
