"""Fan-out loader that settles several named sources into one snapshot."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from datasync.config import SyncSettings
from datasync.execution import (
    CancellableOperation,
    ErrorInfo,
    ErrorKind,
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
    mapping_check_empty,
)

LOGGER = logging.getLogger(__name__)


class MultiSourceAggregator(StatefulResource[Dict[str, Any]]):
    """Loads every key independently; partial failures keep partial data."""

    def __init__(
        self,
        *,
        initial_data: Optional[Mapping[str, Any]] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        check_empty: Optional[CheckEmpty] = None,
        retry_config: Optional[RetryConfig] = None,
        settings: Optional[SyncSettings] = None,
    ) -> None:
        super().__init__(
            initial_data=dict(initial_data or {}),
            on_success=on_success,
            on_error=on_error,
            check_empty=check_empty or mapping_check_empty,
            retry_config=retry_config,
            settings=settings,
        )
        self._operations: Dict[str, CancellableOperation[Any]] = {}
        self._last_fetchers: Optional[Dict[str, Fetcher]] = None
        self._last_error_info: Optional[ErrorInfo] = None

    @property
    def last_error_info(self) -> Optional[ErrorInfo]:
        return self._last_error_info

    @property
    def in_flight_keys(self) -> List[str]:
        return [key for key, op in self._operations.items() if op.running]

    async def load_all(self, fetchers_by_key: Mapping[str, Fetcher], options: Optional[LoadOptions] = None) -> None:
        """Settle every fetcher and merge the successes over the initial defaults."""

        options = options or LoadOptions()
        fetchers = dict(fetchers_by_key)
        self._last_fetchers = fetchers
        self._cancel_all("superseded by a newer load_all")

        generation = self._next_generation()
        self._update(
            loading=options.show_loading_state,
            error=None,
            data=self._state.data if options.preserve_data else dict(self._initial_data or {}),
        )

        timeout_ms = self._resolve_timeout(options)
        runs = []
        for key, fetcher in fetchers.items():
            operation: CancellableOperation[Any] = CancellableOperation(self._build_unit(fetcher, options))
            self._operations[key] = operation
            runs.append(self._run_keyed(key, operation, timeout_ms))

        settled: List[Any] = await asyncio.gather(*runs, return_exceptions=True)

        if not self._is_current(generation):
            LOGGER.debug("Discarding stale multi-source result (generation %s)", generation)
            return
        self._operations.clear()

        successes: Dict[str, Any] = {}
        errors: List[str] = []
        for key, outcome in zip(fetchers, settled):
            if isinstance(outcome, BaseException):
                errors.append(f"{key}: {error_message(outcome)}")
                continue
            _, value = outcome
            successes[key] = value

        merged = {**(self._initial_data or {}), **successes}
        message = "; ".join(errors) if errors else None
        self._last_error_info = ErrorInfo(kind=ErrorKind.AGGREGATE, message=message) if message else None
        self._commit_data(
            merged,
            loading=False,
            error=message,
            retry_count=self._state.retry_count + 1,
        )

        if message is None:
            await self._notify(self._on_success, merged)
        else:
            LOGGER.warning("Multi-source load degraded: %s", message)
            await self._notify(self._on_error, message)

    async def reload(self) -> None:
        if self._last_fetchers is None:
            LOGGER.warning("No fetchers available for reload")
            return
        await self.load_all(self._last_fetchers)

    def reset(self) -> None:
        self._cancel_all("resource reset")
        self._last_error_info = None
        self._restore_initial()

    async def close(self) -> None:
        self._cancel_all("resource closed")
        self._next_generation()

    async def _run_keyed(self, key: str, operation: CancellableOperation[Any], timeout_ms: int) -> Tuple[str, Any]:
        try:
            value = await with_deadline(operation.execute, timeout_ms)
        except Exception:
            operation.cancel(f"{key} failed")
            raise
        return key, value

    def _cancel_all(self, reason: str) -> None:
        for operation in self._operations.values():
            self._cancel_operation(operation, reason)
        self._operations.clear()
