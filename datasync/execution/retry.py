"""Retry/backoff executor for fallible async operations."""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, FrozenSet, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from datasync.config.settings import DEFAULT_RETRYABLE_ERROR_TAGS
from datasync.execution.cancellation import CancellationToken
from datasync.execution.outcome import (
    OperationCancelledError,
    OperationOutcome,
    error_message,
    is_retryable_error,
)
from datasync.execution.timeout import with_deadline

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[BaseException, int, float], Any]


class RetryConfig(BaseModel):
    """Backoff curve and transient-error classification."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: float = Field(default=1000, ge=0)
    max_delay_ms: float = Field(default=5000, ge=0)
    backoff_factor: float = Field(default=2.0)
    jitter_ratio: float = Field(default=0.1, ge=0.0, le=1.0)
    retryable_error_tags: FrozenSet[str] = Field(
        default_factory=lambda: frozenset(DEFAULT_RETRYABLE_ERROR_TAGS)
    )

    @field_validator("retryable_error_tags", mode="after")
    @classmethod
    def _lower_tags(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        return frozenset(tag.lower() for tag in value if tag)

    @model_validator(mode="after")
    def _check_curve(self) -> RetryConfig:
        if self.initial_delay_ms > self.max_delay_ms:
            raise ValueError("initial_delay_ms must not exceed max_delay_ms")
        if self.backoff_factor <= 1:
            raise ValueError("backoff_factor must be greater than 1")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def base_delay_ms(attempt: int, config: RetryConfig) -> float:
    return config.initial_delay_ms * config.backoff_factor ** (attempt - 1)


def compute_delay(attempt: int, config: RetryConfig, *, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Delay in milliseconds to wait after failed attempt number `attempt`."""

    base = base_delay_ms(attempt, config)
    jitter = rng(0.0, config.jitter_ratio * base)
    return min(base + jitter, config.max_delay_ms)


class BackoffRetryExecutor:
    """Runs an operation until it succeeds, fails fatally or runs out of attempts."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        *,
        on_retry: Optional[RetryObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or RetryConfig()
        self._on_retry = on_retry
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OperationOutcome[T]:
        config = self.config
        tags = config.retryable_error_tags
        last_error: Optional[BaseException] = None

        for attempt in range(1, config.max_attempts + 1):
            try:
                value = await operation()
                return OperationOutcome.succeeded(value, attempt)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if attempt >= config.max_attempts:
                    break
                if not is_retryable_error(exc, tags):
                    return OperationOutcome.failed(exc, attempt, tags)

                delay = compute_delay(attempt, config)
                await self._notify_retry(exc, attempt, delay)
                LOGGER.warning(
                    "Retrying operation (attempt %s/%s) after %.0fms: %s",
                    attempt,
                    config.max_retries,
                    delay,
                    error_message(exc),
                )
                if cancel_token is not None and cancel_token.cancelled:
                    return OperationOutcome.failed(OperationCancelledError(), attempt, tags)
                await self._sleep(delay / 1000.0)
                if cancel_token is not None and cancel_token.cancelled:
                    return OperationOutcome.failed(OperationCancelledError(), attempt, tags)

        assert last_error is not None
        return OperationOutcome.failed(last_error, config.max_attempts, tags)

    async def _notify_retry(self, exc: BaseException, attempt: int, delay: float) -> None:
        if self._on_retry is None:
            return
        try:
            result = self._on_retry(exc, attempt, delay)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress retry observer error", exc_info=True)


async def retry_or_raise(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *,
    on_retry: Optional[RetryObserver] = None,
) -> T:
    """Retry `operation` and return its value, re-raising the final failure."""

    outcome = await BackoffRetryExecutor(config, on_retry=on_retry).run(operation)
    return outcome.unwrap()


async def retry_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int = 10000,
    config: Optional[RetryConfig] = None,
) -> T:
    """Retry `operation` with a deadline applied to every single attempt."""

    return await retry_or_raise(lambda: with_deadline(operation, timeout_ms), config)
