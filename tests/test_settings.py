"""
Test Suite: Settings
====================
"""

import pytest
from pydantic import ValidationError

from devicegate.core.exceptions import DeviceNotFound, SessionWriteFailed
from devicegate.core.settings import ObservabilitySettings, SessionSettings, Settings


class TestSessionSettings:
    def test_defaults(self):
        settings = SessionSettings()
        assert settings.device_limit == 5
        assert settings.eviction_inactivity_threshold_hours == 24
        assert settings.write_retries == 1
        assert settings.rotate_refresh_tokens is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SESSION_DEVICE_LIMIT", "3")
        monkeypatch.setenv("SESSION_ROTATE_REFRESH_TOKENS", "true")

        settings = SessionSettings()
        assert settings.device_limit == 3
        assert settings.rotate_refresh_tokens is True

    def test_negative_limit_rejected(self):
        with pytest.raises(ValidationError):
            SessionSettings(device_limit=-1)

    def test_root_settings_pick_up_sub_settings(self, monkeypatch):
        monkeypatch.setenv("SESSION_EVICTION_INACTIVITY_THRESHOLD_HOURS", "12")
        assert Settings().session.eviction_inactivity_threshold_hours == 12


class TestObservabilitySettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OBSERVABILITY_LOG_FORMAT", "human")
        monkeypatch.setenv("OBSERVABILITY_LOG_LEVEL", "DEBUG")

        settings = ObservabilitySettings()
        assert settings.log_format == "human"
        assert settings.log_level == "DEBUG"


class TestErrorPayloads:
    def test_not_found_payload(self):
        error = DeviceNotFound("Device is not logged in", identity="u1", device="phone")
        assert error.to_dict() == {
            "error": "DeviceNotFound",
            "code": "RESOURCE_NOT_FOUND",
            "message": "Device is not logged in",
            "details": {"identity": "u1", "device": "phone"},
        }

    def test_write_failed_is_retryable(self):
        error = SessionWriteFailed("retry", identity="u1")
        assert error.retryable
        assert error.status_code == 503
