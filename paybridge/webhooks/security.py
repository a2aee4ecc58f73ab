"""Webhook signature verification.

Providers sign webhook deliveries with HMAC-SHA256 but wrap the signature in
different envelopes. Three formats are supported:

- Timestamped (Stripe): one header ``t=<ts>,v1=<sig>[,v1=<sig>...]``, signed
  payload ``"<ts>.<body>"``; any ``v1`` candidate may match.
- Versioned (Revolut): a header ``<version>=<sig>[,...]`` plus a separate
  timestamp header, signed payload ``"<version>.<ts>.<body>"`` per candidate.
- Body only (Bitvora): one header holding the hex HMAC of the raw body.

Every verifier parses the body into a pydantic model after the signature
checks out and raises a ``WebhookVerificationError`` subclass otherwise.
"""

import hashlib
import hmac
import time
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from paybridge.errors import (
    MalformedPayloadError,
    MalformedSignatureHeaderError,
    MissingHeaderError,
    SignatureMismatchError,
    StaleTimestampError,
)
from paybridge.webhooks.message import WebhookMessage

logger = structlog.get_logger(__name__)

EventT = TypeVar("EventT", bound=BaseModel)

TIMESTAMP_KEY = "t"
SIGNATURE_SCHEME = "v1"


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(secret: str | bytes, *parts: str | bytes) -> str:
    """Hex HMAC-SHA256 of ``parts`` concatenated, keyed with ``secret``."""
    mac = hmac.new(_as_bytes(secret), digestmod=hashlib.sha256)
    for part in parts:
        mac.update(_as_bytes(part))
    return mac.hexdigest()


def signatures_match(candidate: str, expected: str) -> bool:
    """Constant-time comparison of two hex signatures."""
    return hmac.compare_digest(_as_bytes(candidate), _as_bytes(expected))


def parse_payload(message: WebhookMessage, model: type[EventT]) -> EventT:
    """Parse a verified body into ``model``.

    Raises:
        MalformedPayloadError: If the body is not valid JSON for ``model``.
    """
    try:
        return model.model_validate_json(message.body)
    except ValidationError as e:
        logger.warning(
            "webhook_payload_malformed",
            endpoint=message.endpoint,
            model=model.__name__,
            errors=e.error_count(),
        )
        raise MalformedPayloadError(str(e)) from e


def _require_header(message: WebhookMessage, header: str) -> str:
    value = message.header(header)
    if value is None:
        raise MissingHeaderError(header.lower())
    return value


def _check_freshness(timestamp: str, tolerance_seconds: int | None, header: str) -> None:
    if tolerance_seconds is None:
        return
    try:
        signed_at = int(timestamp)
    except ValueError as e:
        raise MalformedSignatureHeaderError(header, "timestamp must be an integer") from e
    # Revolut sends milliseconds
    if signed_at > 10**11:
        signed_at //= 1000
    if abs(int(time.time()) - signed_at) > tolerance_seconds:
        logger.warning(
            "webhook_timestamp_stale",
            timestamp=timestamp,
            tolerance_seconds=tolerance_seconds,
        )
        raise StaleTimestampError(timestamp, tolerance_seconds)


# ============================================================================
# Timestamped signatures (t=...,v1=...)
# ============================================================================


def generate_timestamped_signature(
    secret: str | bytes,
    body: bytes,
    timestamp: int | str | None = None,
) -> str:
    """Build a ``t=<ts>,v1=<sig>`` header value for ``body``."""
    if timestamp is None:
        timestamp = int(time.time())
    payload = f"{timestamp}.{body.decode('utf-8', errors='replace')}"
    return f"{TIMESTAMP_KEY}={timestamp},{SIGNATURE_SCHEME}={compute_signature(secret, payload)}"


def verify_timestamped_signature(
    secret: str | bytes,
    message: WebhookMessage,
    *,
    model: type[EventT],
    header: str,
    tolerance_seconds: int | None = None,
) -> EventT:
    """Verify a ``t=...,v1=...`` signature and parse the body.

    Args:
        secret: Webhook signing secret.
        message: Inbound delivery.
        model: Event model the body is parsed into.
        header: Name of the signature header.
        tolerance_seconds: Optional maximum age of the signed timestamp.

    Returns:
        Parsed event.

    Raises:
        MissingHeaderError: If the signature header is absent.
        MalformedSignatureHeaderError: If the header lacks a timestamp or
            any v1 candidate, or a pair is not ``key=value``.
        StaleTimestampError: If the timestamp is outside the tolerance.
        SignatureMismatchError: If no candidate matches.
        MalformedPayloadError: If the body does not parse.
    """
    header = header.lower()
    raw = _require_header(message, header)

    timestamp: str | None = None
    candidates: list[str] = []
    for part in raw.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            raise MalformedSignatureHeaderError(header, f"expected key=value, got {part!r}")
        if key == TIMESTAMP_KEY:
            timestamp = value
        elif key == SIGNATURE_SCHEME:
            candidates.append(value)

    if timestamp is None:
        raise MalformedSignatureHeaderError(header, "missing timestamp")
    if not candidates:
        raise MalformedSignatureHeaderError(header, f"no {SIGNATURE_SCHEME} signatures")

    _check_freshness(timestamp, tolerance_seconds, header)

    expected = compute_signature(secret, f"{timestamp}.{message.text}")
    matched = False
    for candidate in candidates:
        matched |= signatures_match(candidate, expected)

    if not matched:
        logger.warning(
            "webhook_signature_invalid",
            endpoint=message.endpoint,
            header=header,
            candidates=len(candidates),
        )
        raise SignatureMismatchError("Invalid signature", candidates=len(candidates))

    logger.debug("webhook_signature_verified", endpoint=message.endpoint, header=header)
    return parse_payload(message, model)


# ============================================================================
# Versioned signatures (v1=...,v2=... plus timestamp header)
# ============================================================================


def generate_versioned_signature(
    secret: str | bytes,
    body: bytes,
    timestamp: str,
    version: str = SIGNATURE_SCHEME,
) -> str:
    """Build a ``<version>=<sig>`` header value for ``body``."""
    return f"{version}={compute_signature(secret, version, '.', timestamp, '.', body)}"


def verify_versioned_signature(
    secret: str | bytes,
    message: WebhookMessage,
    *,
    model: type[EventT],
    signature_header: str,
    timestamp_header: str,
    tolerance_seconds: int | None = None,
) -> EventT:
    """Verify a versioned signature list and parse the body.

    Each candidate is checked against ``"<version>.<timestamp>.<body>"``
    with its own version string. Failed comparisons are logged at warning.

    Args:
        secret: Webhook signing secret.
        message: Inbound delivery.
        model: Event model the body is parsed into.
        signature_header: Header holding ``version=hex`` candidates.
        timestamp_header: Header holding the raw timestamp.
        tolerance_seconds: Optional maximum age of the timestamp.

    Returns:
        Parsed event.

    Raises:
        MissingHeaderError: Naming whichever header is absent.
        MalformedSignatureHeaderError: If a candidate is not ``version=hex``.
        StaleTimestampError: If the timestamp is outside the tolerance.
        SignatureMismatchError: If no candidate matches.
        MalformedPayloadError: If the body does not parse.
    """
    signature_header = signature_header.lower()
    timestamp_header = timestamp_header.lower()
    raw = _require_header(message, signature_header)
    timestamp = _require_header(message, timestamp_header)

    candidates: list[tuple[str, str]] = []
    for part in raw.split(","):
        version, sep, code = part.strip().partition("=")
        if not sep or not version:
            raise MalformedSignatureHeaderError(
                signature_header, f"expected version=signature, got {part!r}"
            )
        candidates.append((version, code))

    _check_freshness(timestamp, tolerance_seconds, timestamp_header)

    for version, code in candidates:
        expected = compute_signature(secret, version, ".", timestamp, ".", message.body)
        if signatures_match(code, expected):
            logger.debug(
                "webhook_signature_verified",
                endpoint=message.endpoint,
                header=signature_header,
                version=version,
            )
            return parse_payload(message, model)
        logger.warning(
            "webhook_signature_candidate_mismatch",
            endpoint=message.endpoint,
            version=version,
            candidate=code,
            computed=expected,
        )

    raise SignatureMismatchError(candidates=len(candidates))


# ============================================================================
# Body-only signatures
# ============================================================================


def generate_body_signature(secret: str | bytes, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return compute_signature(secret, body)


def verify_body_signature(
    secret: str | bytes,
    message: WebhookMessage,
    *,
    model: type[EventT],
    header: str,
) -> EventT:
    """Verify a single hex HMAC of the raw body and parse it.

    Raises:
        MissingHeaderError: If the signature header is absent.
        SignatureMismatchError: If the signature differs.
        MalformedPayloadError: If the body does not parse.
    """
    header = header.lower()
    signature = _require_header(message, header)
    expected = generate_body_signature(secret, message.body)

    if not signatures_match(signature, expected):
        logger.warning(
            "webhook_signature_invalid",
            endpoint=message.endpoint,
            header=header,
            candidate=signature,
            computed=expected,
        )
        raise SignatureMismatchError(candidates=1)

    logger.debug("webhook_signature_verified", endpoint=message.endpoint, header=header)
    return parse_payload(message, model)
