"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set or not a number.

    Returns:
        Float value from environment.
    """
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_int_env(name: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Settings loaded from environment variables.

    Attributes:
        HTTP_TIMEOUT_SECONDS: Total timeout for outbound provider requests.
        HTTP_CONNECT_TIMEOUT_SECONDS: Connect timeout for outbound requests.
        HTTP_USER_AGENT: User-Agent sent with every outbound request.
        HTTP_LOG_BODY_LIMIT: Max characters of a body written to debug logs.
        WEBHOOK_BRIDGE_CAPACITY: Pending messages buffered per subscriber.
        WEBHOOK_MAX_BODY_BYTES: Largest webhook body accepted by the ingest router.
        WEBHOOK_PATH_PREFIX: Path prefix of the ingest router.
        LOG_LEVEL: Logging level.
        LOG_FORMAT: "json" or "console".
    """

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_CONNECT_TIMEOUT_SECONDS: float = 10.0
    HTTP_USER_AGENT: str = "paybridge/1.0"
    HTTP_LOG_BODY_LIMIT: int = 1024

    # Webhooks
    WEBHOOK_BRIDGE_CAPACITY: int = 100
    WEBHOOK_MAX_BODY_BYTES: int = 4 * 1024 * 1024
    WEBHOOK_PATH_PREFIX: str = "/webhooks"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            HTTP_TIMEOUT_SECONDS=_get_float_env("HTTP_TIMEOUT_SECONDS", 30.0),
            HTTP_CONNECT_TIMEOUT_SECONDS=_get_float_env("HTTP_CONNECT_TIMEOUT_SECONDS", 10.0),
            HTTP_USER_AGENT=os.getenv("HTTP_USER_AGENT", "paybridge/1.0"),
            HTTP_LOG_BODY_LIMIT=_get_int_env("HTTP_LOG_BODY_LIMIT", 1024),
            WEBHOOK_BRIDGE_CAPACITY=_get_int_env("WEBHOOK_BRIDGE_CAPACITY", 100),
            WEBHOOK_MAX_BODY_BYTES=_get_int_env("WEBHOOK_MAX_BODY_BYTES", 4 * 1024 * 1024),
            WEBHOOK_PATH_PREFIX=os.getenv("WEBHOOK_PATH_PREFIX", "/webhooks"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_FORMAT=os.getenv("LOG_FORMAT", "console"),
        )


# Global settings instance
settings = Settings.from_env()
