"""structlog setup for paybridge.

Signing headers, API tokens and webhook secrets pass through the HTTP and
webhook layers as ordinary keyword arguments, so every event is filtered
through ``SecretRedactor`` before it is rendered.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Matched case-insensitively against event keys
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "authorization",
    "bearer",
    "token",
    "api_token",
    "api_key",
    "apikey",
    "secret",
    "webhook_secret",
    "signing_secret",
    "client_secret",
    "password",
    "macaroon",
    "preimage",
})

REDACTED = "[REDACTED]"


class SecretRedactor:
    """Mask the value of any credential-like key in a log event.

    Only key names are inspected. Nested mappings and mappings inside lists
    or tuples are walked; other values are left untouched.
    """

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        return self._mask(event_dict)

    def _mask(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                key: REDACTED
                if isinstance(key, str) and key.lower() in SENSITIVE_KEYS
                else self._mask(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._mask(item) if isinstance(item, Mapping) else item for item in value]
        return value


def _processors(format: str, redact_secrets: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if redact_secrets:
        chain.append(SecretRedactor())
    if format == "json":
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_secrets: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name; unknown names fall back to INFO.
        format: "json" for one JSON object per line, anything else for the
            console renderer.
        redact_secrets: Mask credential values before rendering.
    """
    level_num = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    structlog.configure(
        processors=_processors(format, redact_secrets),
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )


def setup_logging_from_settings() -> None:
    """Configure logging from ``LOG_LEVEL`` and ``LOG_FORMAT``."""
    from paybridge.config import settings

    setup_logging(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
