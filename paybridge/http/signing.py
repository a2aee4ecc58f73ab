"""Pluggable request signing strategies.

A signing strategy receives the method, target URL and already-serialized
body of an outgoing request together with an in-progress ``RequestBuilder``
and returns the builder with its credentials attached. Strategies are
immutable so one instance can serve any number of concurrent requests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from paybridge.errors import SigningError

AUTHORIZATION_HEADER = "Authorization"


@dataclass
class RequestBuilder:
    """Mutable view of a request before it is handed to httpx.

    Attributes:
        method: Upper-case HTTP method.
        url: Fully joined target URL.
        headers: Per-request headers (merged over the client defaults).
    """

    method: str
    url: httpx.URL
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str, value: str) -> "RequestBuilder":
        """Set a header and return the builder for chaining."""
        self.headers[name] = value
        return self


def _validate_header_value(value: str, what: str) -> None:
    """Reject values httpx would refuse or that would split the header."""
    if not value:
        raise SigningError(f"Empty {what}")
    for char in value:
        if ord(char) < 0x20 or ord(char) == 0x7F or ord(char) > 0x7E:
            raise SigningError(f"Malformed {what}: contains invalid characters")


class SigningStrategy(ABC):
    """Attaches authentication to an outgoing request."""

    @abstractmethod
    def sign(
        self,
        method: str,
        url: httpx.URL,
        body: str | None,
        request: RequestBuilder,
    ) -> RequestBuilder:
        """Return ``request`` with authentication added.

        Args:
            method: HTTP method.
            url: Target URL.
            body: Serialized request body, or None for bodiless requests.
            request: Builder to augment.

        Raises:
            SigningError: If credentials cannot be constructed.
        """


@dataclass(frozen=True)
class NoSigning(SigningStrategy):
    """Passthrough for providers that authenticate via URL or body."""

    def sign(
        self,
        method: str,
        url: httpx.URL,
        body: str | None,
        request: RequestBuilder,
    ) -> RequestBuilder:
        return request


@dataclass(frozen=True)
class StaticHeaderSigner(SigningStrategy):
    """Attaches a pre-shared header value (``Authorization`` by default)."""

    value: str
    header: str = AUTHORIZATION_HEADER

    def sign(
        self,
        method: str,
        url: httpx.URL,
        body: str | None,
        request: RequestBuilder,
    ) -> RequestBuilder:
        _validate_header_value(self.value, f"{self.header} value")
        return request.header(self.header, self.value)


@dataclass(frozen=True)
class BearerTokenSigner(SigningStrategy):
    """Attaches ``Authorization: Bearer <token>`` and an optional API version header."""

    token: str
    api_version: str | None = None
    version_header: str = "Api-Version"

    def sign(
        self,
        method: str,
        url: httpx.URL,
        body: str | None,
        request: RequestBuilder,
    ) -> RequestBuilder:
        _validate_header_value(self.token, "bearer token")
        if " " in self.token:
            raise SigningError("Malformed bearer token: contains whitespace")
        request.header(AUTHORIZATION_HEADER, f"Bearer {self.token}")
        if self.api_version is not None:
            _validate_header_value(self.api_version, "API version")
            request.header(self.version_header, self.api_version)
        return request
