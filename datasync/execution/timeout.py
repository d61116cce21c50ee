"""Deadline race for async operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from datasync.execution.outcome import OperationTimeoutError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _drain_loser(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Operation finished with an error after its deadline: %s", exc)
    else:
        LOGGER.debug("Operation finished after its deadline; result dropped")


async def with_deadline(operation: Callable[[], Awaitable[T]], timeout_ms: Optional[int]) -> T:
    """Await `operation()` unless `timeout_ms` elapses first.

    The slower operation is left running; only the wait is abandoned.
    """

    if not timeout_ms or timeout_ms <= 0:
        return await operation()

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000.0)
    except asyncio.CancelledError:
        task.add_done_callback(_drain_loser)
        raise
    if task in done:
        return task.result()
    task.add_done_callback(_drain_loser)
    raise OperationTimeoutError(timeout_ms)
