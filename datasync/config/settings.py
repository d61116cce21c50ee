"""Data-sync configuration loading and validation."""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, NonNegativeInt, PositiveFloat
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

if TYPE_CHECKING:
    from datasync.execution.retry import RetryConfig

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/datasync/datasync.yaml"),
    Path("/etc/datasync/datasync.yml"),
    Path("./config/datasync.yaml"),
    Path("./config/datasync.yml"),
)

DEFAULT_RETRYABLE_ERROR_TAGS: tuple[str, ...] = (
    "unavailable",
    "network-request-failed",
    "timeout",
    "cancelled",
    "deadline-exceeded",
    "resource-exhausted",
    "internal",
    "aborted",
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class SyncSettings(BaseSettings):
    """Validated settings for resource loaders and their retry policy."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="DATASYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backoff
    retry_max_retries: NonNegativeInt = Field(
        default=3,
        description="Retries after the first attempt; total attempts = retries + 1.",
    )
    retry_initial_delay_ms: NonNegativeInt = Field(
        default=1000,
        description="Delay (milliseconds) before the first retry.",
    )
    retry_max_delay_ms: NonNegativeInt = Field(
        default=5000,
        description="Upper bound (milliseconds) for any single retry delay.",
    )
    retry_backoff_factor: PositiveFloat = Field(
        default=2.0,
        description="Multiplier applied to the delay after every attempt.",
    )
    retry_jitter_ratio: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Upper bound of the random jitter as a fraction of the base delay.",
    )
    retryable_error_tags: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_ERROR_TAGS),
        description="Case-insensitive substrings marking an error as transient.",
    )

    # Loader behaviour
    load_timeout_ms: int = Field(
        default=10000,
        description="Deadline (milliseconds) for a whole load; 0 disables it.",
    )
    auto_retry: bool = Field(
        default=False,
        description="Schedule one deferred reload after a network failure.",
    )
    auto_retry_delay_ms: NonNegativeInt = Field(
        default=5000,
        description="Delay (milliseconds) before the deferred reload fires.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for processes embedding the loaders.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("retryable_error_tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        # Environment values arrive raw: a JSON list or comma separated tags.
        if isinstance(value, str) and value.lstrip().startswith("["):
            return json.loads(value)
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    def retry_config(self) -> "RetryConfig":
        """Build the retry policy described by these settings."""

        from datasync.execution.retry import RetryConfig

        return RetryConfig(
            max_retries=self.retry_max_retries,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            backoff_factor=self.retry_backoff_factor,
            jitter_ratio=self.retry_jitter_ratio,
            retryable_error_tags=frozenset(self.retryable_error_tags),
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[SyncSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._file_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _file_settings_source(settings_cls: type[SyncSettings] | None = None) -> Dict[str, Any]:
        for path in SyncSettings._resolve_candidate_paths():
            data = SyncSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("DATASYNC_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read datasync config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid datasync config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Datasync config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> SyncSettings:
    """Return memoized data-sync settings."""

    return SyncSettings()


def configure_logging(settings: SyncSettings | None = None) -> None:
    """Install a root handler at the configured level."""

    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
