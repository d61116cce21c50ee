"""Realtime push subscriptions layered on a resource loader."""

from __future__ import annotations

import logging
from itertools import count
from typing import Any, Callable, Dict, Iterator, Optional, Set

from datasync.execution.outcome import error_message
from datasync.resources.loader import AsyncResourceState

LOGGER = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]
SubscriptionSetup = Callable[[Callable[[Any], None]], Unsubscribe]
Transform = Callable[[Any], Any]


def _noop_unsubscribe() -> None:
    return None


class SubscriptionRegistry:
    """Tracks active unsubscribe handles and filters pushes after teardown.

    Each listener captures the registry epoch at setup. `cleanup` bumps the
    epoch, so callbacks fired by a source that keeps pushing after being
    unsubscribed are dropped instead of overwriting newer state.
    """

    def __init__(self, resource: AsyncResourceState[Any]) -> None:
        self._resource = resource
        self._handles: Dict[int, Unsubscribe] = {}
        self._live: Set[int] = set()
        self._ids: Iterator[int] = count(1)
        self._epoch = 0

    @property
    def resource(self) -> AsyncResourceState[Any]:
        return self._resource

    @property
    def active_count(self) -> int:
        return len(self._handles)

    def setup_realtime_listener(
        self,
        setup: SubscriptionSetup,
        transform: Optional[Transform] = None,
    ) -> Unsubscribe:
        """Register a push source; returns an idempotent unsubscribe callable."""

        resource = self._resource
        resource.mark_loading()
        handle_id = next(self._ids)
        epoch = self._epoch

        def _on_push(pushed: Any) -> None:
            if epoch != self._epoch or handle_id not in self._live:
                LOGGER.debug("Ignoring push for inactive subscription %s", handle_id)
                return
            try:
                value = transform(pushed) if transform is not None else pushed
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("Realtime transform failed for subscription %s", handle_id, exc_info=True)
                resource.set_error(error_message(exc))
                return
            resource.apply_push(value)

        self._live.add(handle_id)
        try:
            raw_unsubscribe = setup(_on_push)
        except Exception as exc:  # noqa: BLE001
            self._live.discard(handle_id)
            LOGGER.error("Realtime listener setup failed", exc_info=True)
            resource.record_failure(error_message(exc))
            return _noop_unsubscribe

        self._handles[handle_id] = raw_unsubscribe

        def _unsubscribe() -> None:
            self._live.discard(handle_id)
            handle = self._handles.pop(handle_id, None)
            if handle is not None:
                handle()

        return _unsubscribe

    def cleanup(self) -> None:
        """Invoke every active unsubscribe once; errors are logged, not raised."""

        self._epoch += 1
        handles = list(self._handles.items())
        self._handles.clear()
        self._live.clear()
        for handle_id, unsubscribe in handles:
            try:
                unsubscribe()
            except Exception:  # noqa: BLE001
                LOGGER.error("Error during cleanup of subscription %s", handle_id, exc_info=True)

    def __enter__(self) -> SubscriptionRegistry:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cleanup()
