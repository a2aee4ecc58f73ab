"""Observability helpers.

This module provides:
- setup_logging: structlog processor chain (JSON or console)
- SecretRedactor: masks credentials before rendering
"""

from paybridge.observability.logging import (
    SENSITIVE_KEYS,
    SecretRedactor,
    setup_logging,
    setup_logging_from_settings,
)

__all__ = [
    "SENSITIVE_KEYS",
    "SecretRedactor",
    "setup_logging",
    "setup_logging_from_settings",
]
