"""Exception hierarchy for payment provider integrations.

Exception Hierarchy:
    PaymentsError (base)
    ├── RequestBuildError - Request could not be constructed
    ├── SigningError - Signing strategy failed before dispatch
    ├── TransportError - Connect/DNS/TLS/timeout failures
    ├── ApiStatusError - Non-2xx HTTP responses
    ├── ResponseDecodeError - 2xx responses with an unreadable body
    ├── ProviderError - Provider reported a failure in a successful call
    ├── UnsupportedOperationError - Operation not offered by a provider
    ├── InvoiceParseError - BOLT11 payment request could not be decoded
    ├── BridgeError - Webhook bridge subscription failures
    │   ├── BridgeLaggedError
    │   └── SubscriptionClosedError
    └── WebhookVerificationError - Inbound webhook rejected
        ├── MissingHeaderError
        ├── MalformedSignatureHeaderError
        ├── StaleTimestampError
        ├── SignatureMismatchError
        └── MalformedPayloadError
"""

from typing import Any


class PaymentsError(Exception):
    """Base exception for all paybridge errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details for structured logging.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Outbound request errors
# ============================================================================


class RequestBuildError(PaymentsError):
    """Raised when a request cannot be built (bad path, unserializable body)."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, details={"path": path})
        self.path = path


class SigningError(PaymentsError):
    """Raised when a signing strategy cannot construct credentials."""

    pass


class TransportError(PaymentsError):
    """Raised when a request fails before an HTTP response is received.

    Attributes:
        method: HTTP method of the failed request.
        path: Request path relative to the client base URL.
        cause: Text of the underlying transport failure.
    """

    def __init__(self, method: str, path: str, cause: str) -> None:
        super().__init__(
            f"Failed to send request {method} {path}: {cause}",
            details={"method": method, "path": path, "cause": cause},
        )
        self.method = method
        self.path = path
        self.cause = cause


class ApiStatusError(PaymentsError):
    """Raised for non-2xx HTTP responses.

    Attributes:
        method: HTTP method of the request.
        path: Request path relative to the client base URL.
        status_code: HTTP status returned by the provider.
        body: Raw response text.
    """

    def __init__(self, method: str, path: str, status_code: int, body: str) -> None:
        super().__init__(
            f"{method} {path}: {status_code}: {body}",
            details={"method": method, "path": path, "status_code": status_code},
        )
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(PaymentsError):
    """Raised when a successful response body cannot be decoded.

    Attributes:
        path: Request path relative to the client base URL.
        body: Raw response text, kept for diagnostics.
        detail: Parser or validation failure description.
    """

    def __init__(self, path: str, body: str, detail: str) -> None:
        super().__init__(
            f"Failed to parse JSON from {path}: {detail}",
            details={"path": path, "detail": detail},
        )
        self.path = path
        self.body = body
        self.detail = detail


class ProviderError(PaymentsError):
    """Raised when a provider reports failure inside an otherwise valid reply."""

    pass


class UnsupportedOperationError(PaymentsError):
    """Raised when a provider does not offer the requested operation."""

    pass


class InvoiceParseError(PaymentsError):
    """Raised when a BOLT11 payment request cannot be decoded."""

    pass


# ============================================================================
# Bridge errors
# ============================================================================


class BridgeError(PaymentsError):
    """Base class for webhook bridge subscription errors."""

    pass


class BridgeLaggedError(BridgeError):
    """Raised on receive after messages were dropped for a slow subscriber.

    Attributes:
        skipped: Number of messages dropped since the last receive.
    """

    def __init__(self, skipped: int) -> None:
        super().__init__(
            f"Subscriber lagged behind, {skipped} webhook message(s) dropped",
            details={"skipped": skipped},
        )
        self.skipped = skipped


class SubscriptionClosedError(BridgeError):
    """Raised on receive once a subscription is closed and drained."""

    def __init__(self, message: str = "Webhook subscription closed") -> None:
        super().__init__(message)


# ============================================================================
# Webhook verification errors
# ============================================================================


class WebhookVerificationError(PaymentsError):
    """Base class for rejected inbound webhooks."""

    pass


class MissingHeaderError(WebhookVerificationError):
    """Raised when a required signature header is absent.

    Attributes:
        header: Lower-cased name of the missing header.
    """

    def __init__(self, header: str) -> None:
        super().__init__(f"Missing {header} header", details={"header": header})
        self.header = header


class MalformedSignatureHeaderError(WebhookVerificationError):
    """Raised when a signature header cannot be parsed."""

    def __init__(self, header: str, reason: str) -> None:
        super().__init__(
            f"Invalid {header} header: {reason}",
            details={"header": header, "reason": reason},
        )
        self.header = header
        self.reason = reason


class StaleTimestampError(WebhookVerificationError):
    """Raised when a signed timestamp is outside the accepted window."""

    def __init__(self, timestamp: str, tolerance_seconds: int) -> None:
        super().__init__(
            f"Webhook timestamp {timestamp} outside {tolerance_seconds}s tolerance",
            details={"timestamp": timestamp, "tolerance_seconds": tolerance_seconds},
        )
        self.timestamp = timestamp
        self.tolerance_seconds = tolerance_seconds


class SignatureMismatchError(WebhookVerificationError):
    """Raised when no signature candidate matches the computed HMAC."""

    def __init__(self, message: str = "No valid signature found", *, candidates: int = 0) -> None:
        super().__init__(message, details={"candidates": candidates})
        self.candidates = candidates


class MalformedPayloadError(WebhookVerificationError):
    """Raised when the signature is valid but the body does not parse."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            f"Signature valid but payload malformed: {detail}",
            details={"detail": detail},
        )
        self.detail = detail
