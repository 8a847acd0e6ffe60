"""Tests for client configuration."""

import pytest
from pydantic import ValidationError

from lastmile.core.config import Settings, normalize_api_url


class TestNormalizeApiUrl:
    """normalize_api_url appends /api when missing."""

    def test_keeps_url_ending_with_api(self):
        """URL already ending with /api is unchanged."""
        assert normalize_api_url("http://backend:5000/api") == "http://backend:5000/api"

    def test_appends_api(self):
        """Bare origin gets /api appended."""
        assert normalize_api_url("http://backend:5000") == "http://backend:5000/api"

    def test_trailing_slash_not_doubled(self):
        """Trailing slash is reused instead of doubled."""
        assert normalize_api_url("http://backend:5000/") == "http://backend:5000/api"


class TestSettingsDefaults:
    """Defaults match the realtime and camera contracts."""

    def test_realtime_defaults(self, config: Settings):
        """Five attempts, 1s base and 5s cap, websocket before polling."""
        assert config.realtime_max_reconnect_attempts == 5
        assert config.realtime_reconnect_base_delay_ms == 1000
        assert config.realtime_reconnect_max_delay_ms == 5000
        assert config.realtime_transports == ["websocket", "polling"]
        assert config.realtime_path == "/socket.io"

    def test_camera_defaults(self, config: Settings):
        """10 fps and a 300 ms mount wait."""
        assert config.camera_fps == 10
        assert config.camera_mount_timeout_ms == 300

    def test_only_client_settings(self):
        """Every setting is one the client reads."""
        assert set(Settings.model_fields) == {
            "api_url",
            "request_timeout_seconds",
            "realtime_path",
            "realtime_transports",
            "realtime_max_reconnect_attempts",
            "realtime_reconnect_base_delay_ms",
            "realtime_reconnect_max_delay_ms",
            "camera_fps",
            "camera_mount_timeout_ms",
            "camera_back_index",
            "camera_front_index",
        }

    def test_realtime_url_drops_api_suffix(self):
        """Realtime origin is the REST base without /api."""
        config = Settings(_env_file=None, api_url="https://ops.example.com/api")
        assert config.base_url == "https://ops.example.com/api"
        assert config.realtime_url == "https://ops.example.com"

    def test_base_url_normalized(self):
        """base_url always ends with /api."""
        config = Settings(_env_file=None, api_url="https://ops.example.com")
        assert config.base_url == "https://ops.example.com/api"


class TestSettingsValidation:
    """check_ranges rejects unusable values."""

    def test_rejects_zero_fps(self):
        """camera_fps must be positive."""
        with pytest.raises(ValidationError, match="CAMERA_FPS"):
            Settings(_env_file=None, camera_fps=0)

    def test_rejects_non_positive_timeout(self):
        """request_timeout_seconds must be positive."""
        with pytest.raises(ValidationError, match="REQUEST_TIMEOUT_SECONDS"):
            Settings(_env_file=None, request_timeout_seconds=0)

    def test_rejects_negative_attempts(self):
        """Reconnect attempts cannot be negative."""
        with pytest.raises(ValidationError, match="cannot be negative"):
            Settings(_env_file=None, realtime_max_reconnect_attempts=-1)

    def test_rejects_cap_below_base(self):
        """Max delay below base delay is rejected."""
        with pytest.raises(ValidationError, match="MAX_DELAY_MS"):
            Settings(
                _env_file=None,
                realtime_reconnect_base_delay_ms=2000,
                realtime_reconnect_max_delay_ms=1000,
            )

    def test_rejects_empty_transports(self):
        """At least one transport is required."""
        with pytest.raises(ValidationError, match="at least one transport"):
            Settings(_env_file=None, realtime_transports=[])

    def test_rejects_unknown_transport(self):
        """Only websocket and polling are known."""
        with pytest.raises(ValidationError, match="Unknown realtime transports"):
            Settings(_env_file=None, realtime_transports=["websocket", "carrier-pigeon"])

    def test_zero_attempts_allowed(self):
        """Zero attempts disables manager-level reconnects."""
        config = Settings(_env_file=None, realtime_max_reconnect_attempts=0)
        assert config.realtime_max_reconnect_attempts == 0
