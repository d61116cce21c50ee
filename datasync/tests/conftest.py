import pytest

from datasync.config import SyncSettings
from datasync.execution import RetryConfig


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        retry_initial_delay_ms=1,
        retry_max_delay_ms=5,
        load_timeout_ms=1000,
        auto_retry=False,
    )


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_retries=3, initial_delay_ms=1, max_delay_ms=5)
