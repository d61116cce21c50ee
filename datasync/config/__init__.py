"""Configuration primitives for datasync loaders."""

from .settings import DEFAULT_RETRYABLE_ERROR_TAGS, SyncSettings, configure_logging, get_settings

__all__ = ["DEFAULT_RETRYABLE_ERROR_TAGS", "SyncSettings", "configure_logging", "get_settings"]
