"""Tests for environment-based settings."""

import os
from unittest.mock import patch

from paybridge.config import Settings


class TestSettings:
    """Tests for Settings.from_env."""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        """Should use defaults with an empty environment."""
        settings = Settings.from_env()

        assert settings.HTTP_TIMEOUT_SECONDS == 30.0
        assert settings.HTTP_CONNECT_TIMEOUT_SECONDS == 10.0
        assert settings.HTTP_USER_AGENT == "paybridge/1.0"
        assert settings.WEBHOOK_BRIDGE_CAPACITY == 100
        assert settings.WEBHOOK_MAX_BODY_BYTES == 4 * 1024 * 1024
        assert settings.WEBHOOK_PATH_PREFIX == "/webhooks"
        assert settings.LOG_LEVEL == "INFO"

    @patch.dict(
        os.environ,
        {
            "HTTP_TIMEOUT_SECONDS": "5.5",
            "WEBHOOK_BRIDGE_CAPACITY": "16",
            "WEBHOOK_PATH_PREFIX": "/hooks",
            "LOG_FORMAT": "json",
        },
        clear=True,
    )
    def test_from_environment(self):
        """Should read values from the environment."""
        settings = Settings.from_env()

        assert settings.HTTP_TIMEOUT_SECONDS == 5.5
        assert settings.WEBHOOK_BRIDGE_CAPACITY == 16
        assert settings.WEBHOOK_PATH_PREFIX == "/hooks"
        assert settings.LOG_FORMAT == "json"

    @patch.dict(
        os.environ,
        {"HTTP_TIMEOUT_SECONDS": "soon", "WEBHOOK_BRIDGE_CAPACITY": "  "},
        clear=True,
    )
    def test_invalid_numbers_fall_back(self):
        """Should fall back to defaults for unparsable numbers."""
        settings = Settings.from_env()

        assert settings.HTTP_TIMEOUT_SECONDS == 30.0
        assert settings.WEBHOOK_BRIDGE_CAPACITY == 100
