"""Cooperative cancellation for a single execution of an async unit of work."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from datasync.execution.outcome import OperationCancelledError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signal a unit of work may observe at its suspension points."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()

    async def wait(self) -> None:
        await self._event.wait()


class CancellableOperation(Generic[T]):
    """Wraps `unit(token)` so every `execute` runs under a fresh token.

    Cancellation is best effort: a unit that never looks at its token keeps
    running, and callers rely on generation checks to drop its result.
    """

    def __init__(self, unit: Callable[[CancellationToken], Awaitable[T]]) -> None:
        self._unit = unit
        self._token: Optional[CancellationToken] = None
        self._running = False
        self._cancel_requested: Optional[str] = None

    @property
    def token(self) -> Optional[CancellationToken]:
        return self._token

    @property
    def running(self) -> bool:
        return self._running

    async def execute(self) -> T:
        token = CancellationToken()
        self._token = token
        self._running = True
        if self._cancel_requested is not None:
            token.cancel(self._cancel_requested)
            self._cancel_requested = None
        try:
            token.raise_if_cancelled()
            result = await self._unit(token)
            token.raise_if_cancelled()
            return result
        finally:
            self._running = False

    def cancel(self, reason: str = "cancelled") -> None:
        """Ask the in-flight execution to stop; no-op once it has settled.

        A request made before the first `execute` starts is held and applied
        to that execution's token.
        """

        if self._token is None:
            LOGGER.debug("Cancelling operation before it started: %s", reason)
            self._cancel_requested = reason
            return
        if not self._running:
            return
        LOGGER.debug("Cancelling in-flight operation: %s", reason)
        self._token.cancel(reason)
