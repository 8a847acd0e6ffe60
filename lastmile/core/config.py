"""Client configuration loaded from environment variables.

Settings for the REST backend, the realtime channel, and camera capture.
Uses pydantic-settings for validation and .env file support.
"""

import structlog
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

_KNOWN_TRANSPORTS = {"websocket", "polling"}


def normalize_api_url(url: str) -> str:
    """Make sure the REST base URL ends with ``/api``.

    Args:
        url: Configured base URL.

    Returns:
        The URL unchanged when it already ends with ``/api``, otherwise the
        URL with ``/api`` appended.
    """
    if url.endswith("/api"):
        return url
    normalized = f"{url}api" if url.endswith("/") else f"{url}/api"
    logger.warning("api_url_normalized", configured=url, normalized=normalized)
    return normalized


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # REST backend
    api_url: str = "http://localhost:5000/api"
    request_timeout_seconds: float = 30.0

    # Realtime channel
    realtime_path: str = "/socket.io"
    realtime_transports: list[str] = ["websocket", "polling"]
    realtime_max_reconnect_attempts: int = 5
    realtime_reconnect_base_delay_ms: int = 1000
    realtime_reconnect_max_delay_ms: int = 5000

    # Camera capture
    camera_fps: int = 10
    camera_mount_timeout_ms: int = 300
    camera_back_index: int = 0
    camera_front_index: int = 1

    @property
    def base_url(self) -> str:
        """REST base URL, always ending with /api."""
        return normalize_api_url(self.api_url)

    @property
    def realtime_url(self) -> str:
        """Realtime server origin (the REST base URL without /api)."""
        return self.base_url.removesuffix("/api")

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        """Validate numeric ranges and the transport list.

        Checks:
        - Request timeout and camera fps must be positive
        - Reconnect attempts must be non-negative
        - Reconnect max delay must not be below the base delay
        - Transports must be non-empty and known
        """
        if self.request_timeout_seconds <= 0:
            msg = (
                "REQUEST_TIMEOUT_SECONDS must be positive. "
                f"Got: {self.request_timeout_seconds}"
            )
            raise ValueError(msg)

        if self.camera_fps <= 0:
            msg = f"CAMERA_FPS must be positive. Got: {self.camera_fps}"
            raise ValueError(msg)

        if self.realtime_max_reconnect_attempts < 0:
            msg = (
                "REALTIME_MAX_RECONNECT_ATTEMPTS cannot be negative. "
                f"Got: {self.realtime_max_reconnect_attempts}"
            )
            raise ValueError(msg)

        if self.realtime_reconnect_max_delay_ms < self.realtime_reconnect_base_delay_ms:
            msg = (
                "REALTIME_RECONNECT_MAX_DELAY_MS must be >= "
                "REALTIME_RECONNECT_BASE_DELAY_MS."
            )
            raise ValueError(msg)

        if not self.realtime_transports:
            msg = "REALTIME_TRANSPORTS must list at least one transport."
            raise ValueError(msg)

        unknown = set(self.realtime_transports) - _KNOWN_TRANSPORTS
        if unknown:
            msg = (
                f"Unknown realtime transports: {sorted(unknown)}. "
                f"Known: {sorted(_KNOWN_TRANSPORTS)}"
            )
            raise ValueError(msg)

        return self


settings = Settings()
