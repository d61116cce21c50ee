import logging

import pytest

from datasync.config import DEFAULT_RETRYABLE_ERROR_TAGS, SyncSettings, configure_logging, get_settings
from datasync.execution import RetryConfig


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATASYNC_CONFIG_FILE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_describe_standard_backoff():
    settings = SyncSettings()

    config = settings.retry_config()
    assert isinstance(config, RetryConfig)
    assert config.max_retries == 3
    assert config.initial_delay_ms == 1000
    assert config.max_delay_ms == 5000
    assert config.backoff_factor == 2.0
    assert config.retryable_error_tags == frozenset(DEFAULT_RETRYABLE_ERROR_TAGS)
    assert settings.load_timeout_ms == 10000
    assert settings.auto_retry is False
    assert settings.auto_retry_delay_ms == 5000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATASYNC_RETRY_MAX_RETRIES", "5")
    monkeypatch.setenv("DATASYNC_AUTO_RETRY", "true")
    monkeypatch.setenv("DATASYNC_RETRYABLE_ERROR_TAGS", '["unavailable", "quota"]')
    monkeypatch.setenv("DATASYNC_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.retry_max_retries == 5
    assert settings.auto_retry is True
    assert settings.retry_config().retryable_error_tags == frozenset({"unavailable", "quota"})
    assert settings.log_level == "DEBUG"
    assert get_settings() is settings


def test_yaml_file_seeds_settings(monkeypatch, tmp_path):
    config_file = tmp_path / "datasync.yaml"
    config_file.write_text("load_timeout_ms: 2500\nretry_backoff_factor: 3\n", encoding="utf-8")
    monkeypatch.setenv("DATASYNC_CONFIG_FILE", str(config_file))

    settings = SyncSettings()

    assert settings.load_timeout_ms == 2500
    assert settings.retry_backoff_factor == 3
    assert settings.config_path == config_file


def test_default_location_is_used_when_present(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "datasync.yml").write_text("auto_retry_delay_ms: 750\n", encoding="utf-8")

    settings = SyncSettings()

    assert settings.auto_retry_delay_ms == 750


def test_invalid_files_are_rejected(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("retry: [unterminated\n", encoding="utf-8")
    listing = tmp_path / "listing.json"
    listing.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid datasync config file"):
        SyncSettings._load_file(broken)
    with pytest.raises(ValueError, match="mapping at top level"):
        SyncSettings._load_file(listing)
    assert SyncSettings._load_file(tmp_path / "absent.yaml") is None


def test_inconsistent_retry_settings_fail_when_building_policy():
    settings = SyncSettings(retry_initial_delay_ms=9000, retry_max_delay_ms=100)

    with pytest.raises(ValueError):
        settings.retry_config()


def test_configure_logging_uses_settings_level(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    configure_logging(SyncSettings(log_level="warning"))

    assert captured["level"] == logging.WARNING
    assert "%(name)s" in captured["format"]


def test_comma_separated_tags_from_environment(monkeypatch):
    monkeypatch.setenv("DATASYNC_RETRYABLE_ERROR_TAGS", "Unavailable, quota,,")

    settings = SyncSettings()

    assert settings.retryable_error_tags == ["Unavailable", "quota"]
    assert settings.retry_config().retryable_error_tags == frozenset({"unavailable", "quota"})
