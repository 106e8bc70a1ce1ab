"""Tests for configuration settings."""
import pytest

from vocabsync.config import (
    MAX_RETRIES,
    RETENTION_DAYS,
    ApiSettings,
    Settings,
    SyncSettings,
    settings,
)


def test_settings_defaults():
    """Test default values of the sync settings."""
    assert MAX_RETRIES == 3
    assert RETENTION_DAYS == 7
    assert settings.sync.max_retries == 3
    assert settings.sync.retention_days == 7


def test_test_environment_loaded():
    """Test that the test environment file was picked up."""
    assert settings.database.url == "sqlite://"
    assert settings.api.base_url == "http://testserver/api"
    assert settings.session.shuffle is False


def test_validate_accepts_defaults():
    """Test that freshly built settings are valid."""
    Settings().validate()


def test_validate_rejects_bad_retries():
    """Test that a zero retry ceiling is rejected."""
    bad = Settings(sync=SyncSettings(max_retries=0))

    with pytest.raises(ValueError, match="SYNC_MAX_RETRIES"):
        bad.validate()


def test_validate_rejects_bad_api_settings():
    """Test API settings validation."""
    with pytest.raises(ValueError, match="API_BASE_URL"):
        Settings(api=ApiSettings(base_url="")).validate()

    with pytest.raises(ValueError, match="API_TIMEOUT"):
        Settings(api=ApiSettings(timeout=0)).validate()
