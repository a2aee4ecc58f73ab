"""Authenticated JSON API client.

This module provides an async client for provider REST APIs with a
pluggable signing strategy, uniform JSON encoding/decoding and uniform
error classification. Provider integrations build on it rather than
talking to httpx directly.
"""

import json
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from paybridge.config import settings
from paybridge.errors import (
    ApiStatusError,
    RequestBuildError,
    ResponseDecodeError,
    SigningError,
    TransportError,
)
from paybridge.http.signing import RequestBuilder, SigningStrategy

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...({len(text) - limit} more chars)"


def _to_jsonable(body: Any) -> Any:
    """Convert pydantic models (at any depth of lists/dicts) to plain data."""
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", exclude_none=True, by_alias=True)
    if isinstance(body, dict):
        return {key: _to_jsonable(value) for key, value in body.items()}
    if isinstance(body, (list, tuple)):
        return [_to_jsonable(item) for item in body]
    return body


class JsonApiClient:
    """Async client for JSON provider APIs.

    Every outgoing request passes through the configured signing strategy
    exactly once, after the body has been serialized, so strategies that
    sign over the literal body bytes see exactly what is sent.

    Example:
        client = JsonApiClient(
            "https://merchant.revolut.com",
            signer=BearerTokenSigner(token, api_version="2024-09-01"),
        )
        order = await client.get("/api/orders/123", response_type=RevolutOrder)
    """

    content_type = JSON_CONTENT_TYPE

    def __init__(
        self,
        base_url: str,
        *,
        signer: SigningStrategy | None = None,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        headers: dict[str, str] | None = None,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL that request paths are joined against.
            signer: Optional signing strategy invoked once per request.
            timeout: Request timeout in seconds (defaults to settings).
            connect_timeout: Connect timeout in seconds (defaults to settings).
            headers: Extra default headers sent with every request.
            verify: Verify TLS certificates.
            transport: Optional httpx transport (used for testing).

        Raises:
            RequestBuildError: If the base URL is invalid.
        """
        try:
            self.base_url = httpx.URL(base_url)
        except (httpx.InvalidURL, TypeError) as e:
            raise RequestBuildError(f"Invalid base URL {base_url!r}: {e}") from e
        if not self.base_url.scheme or not self.base_url.host:
            raise RequestBuildError(f"Invalid base URL {base_url!r}: missing scheme or host")

        self.signer = signer
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.connect_timeout = (
            connect_timeout
            if connect_timeout is not None
            else settings.HTTP_CONNECT_TIMEOUT_SECONDS
        )
        self._default_headers = {
            "User-Agent": settings.HTTP_USER_AGENT,
            "Accept": JSON_CONTENT_TYPE,
            **(headers or {}),
        }
        self._verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="json_api_client", base_url=str(self.base_url))

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=self._default_headers,
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                verify=self._verify,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _join(self, path: str) -> httpx.URL:
        if not path:
            raise RequestBuildError("Request path must not be empty", path=path)
        try:
            return self.base_url.join(path)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise RequestBuildError(f"Cannot join {path!r} to {self.base_url}: {e}", path=path) from e

    def _serialize_body(self, body: Any) -> str:
        """Serialize a request body to the text that will be sent and signed."""
        return json.dumps(_to_jsonable(body), separators=(",", ":"))

    def build_request(self, method: str, path: str, body: Any = None) -> httpx.Request:
        """Build and sign a request without sending it.

        Args:
            method: HTTP method.
            path: Path joined against the base URL.
            body: Optional body (dict, list or pydantic model).

        Returns:
            Signed httpx request.

        Raises:
            RequestBuildError: If the URL or body is invalid.
            SigningError: If the signing strategy fails.
        """
        method = method.upper()
        url = self._join(path)

        content: str | None = None
        if body is not None:
            try:
                content = self._serialize_body(body)
            except (TypeError, ValueError) as e:
                raise RequestBuildError(f"Cannot serialize body for {path}: {e}", path=path) from e

        builder = RequestBuilder(method=method, url=url, headers={"Accept": "application/json"})
        if content is not None:
            builder.header("Content-Type", self.content_type)

        if self.signer is not None:
            try:
                builder = self.signer.sign(method, url, content, builder)
            except SigningError:
                raise
            except (TypeError, ValueError) as e:
                raise SigningError(f"Failed to sign {method} {path}: {e}") from e

        try:
            request = self._get_client().build_request(
                builder.method,
                builder.url,
                headers=builder.headers,
                content=content.encode("utf-8") if content is not None else None,
            )
        except (httpx.InvalidURL, UnicodeEncodeError, ValueError) as e:
            raise SigningError(f"Invalid request headers for {method} {path}: {e}") from e

        self._logger.debug(
            "http_request",
            method=method,
            path=path,
            body=_truncate(content, settings.HTTP_LOG_BODY_LIMIT) if content else None,
            headers=sorted(builder.headers),
        )
        return request

    async def _send(self, request: httpx.Request, path: str) -> httpx.Response:
        try:
            return await self._get_client().send(request)
        except httpx.TimeoutException as e:
            self._logger.warning("http_timeout", method=request.method, path=path, error=str(e))
            raise TransportError(request.method, path, f"timeout: {e!r}") from e
        except httpx.RequestError as e:
            self._logger.warning("http_transport_error", method=request.method, path=path, error=str(e))
            raise TransportError(request.method, path, f"{e.__class__.__name__}: {e}") from e

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        response_type: Any = None,
    ) -> Any:
        """Send a request and decode the JSON response.

        Args:
            method: HTTP method.
            path: Path joined against the base URL.
            body: Optional request body.
            response_type: Optional type the JSON is validated into.

        Returns:
            Decoded JSON (validated into ``response_type`` when given).

        Raises:
            TransportError: If no response was received.
            ApiStatusError: For non-2xx responses.
            ResponseDecodeError: If a 2xx body cannot be decoded.
        """
        request = self.build_request(method, path, body)
        response = await self._send(request, path)
        text = response.text

        self._logger.debug(
            "http_response",
            method=request.method,
            path=path,
            status=response.status_code,
            body=_truncate(text, settings.HTTP_LOG_BODY_LIMIT),
        )

        if not response.is_success:
            raise ApiStatusError(request.method, path, response.status_code, text)

        try:
            data = json.loads(text)
        except ValueError as e:
            raise ResponseDecodeError(path, text, str(e)) from e

        if response_type is None:
            return data
        try:
            return TypeAdapter(response_type).validate_python(data)
        except ValidationError as e:
            raise ResponseDecodeError(path, text, str(e)) from e

    async def request_status(self, method: str, path: str, body: Any = None) -> int:
        """Send a request and return only the status code.

        Raises:
            TransportError: If no response was received.
            ApiStatusError: For non-2xx responses.
        """
        request = self.build_request(method, path, body)
        response = await self._send(request, path)
        text = response.text

        self._logger.debug(
            "http_response",
            method=request.method,
            path=path,
            status=response.status_code,
            body=_truncate(text, settings.HTTP_LOG_BODY_LIMIT),
        )

        if not response.is_success:
            raise ApiStatusError(request.method, path, response.status_code, text)
        return response.status_code

    async def get(self, path: str, *, response_type: Any = None) -> Any:
        """GET ``path`` and decode the response."""
        return await self.request("GET", path, response_type=response_type)

    async def post(self, path: str, body: Any = None, *, response_type: Any = None) -> Any:
        """POST ``body`` to ``path`` and decode the response."""
        return await self.request("POST", path, body, response_type=response_type)

    async def put(self, path: str, body: Any, *, response_type: Any = None) -> Any:
        """PUT ``body`` to ``path`` and decode the response."""
        return await self.request("PUT", path, body, response_type=response_type)

    async def delete(self, path: str, *, response_type: Any = None) -> Any:
        """DELETE ``path`` and decode the response."""
        return await self.request("DELETE", path, response_type=response_type)

    async def __aenter__(self) -> "JsonApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


def _flatten_form(value: Any, prefix: str, out: list[tuple[str, str]]) -> None:
    if value is None:
        return
    if isinstance(value, dict):
        for key, item in value.items():
            _flatten_form(item, f"{prefix}[{key}]" if prefix else str(key), out)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _flatten_form(item, f"{prefix}[{index}]", out)
    elif isinstance(value, bool):
        out.append((prefix, "true" if value else "false"))
    else:
        out.append((prefix, str(value)))


def encode_form(body: Any) -> str:
    """Encode a body as ``application/x-www-form-urlencoded``.

    Nested mappings and lists use bracket notation (``a[b][0]=x``),
    booleans are written as ``true``/``false`` and ``None`` values are
    omitted.
    """
    data = _to_jsonable(body)
    if not isinstance(data, dict):
        raise TypeError(f"Form body must be a mapping, got {type(data).__name__}")
    pairs: list[tuple[str, str]] = []
    _flatten_form(data, "", pairs)
    return urlencode(pairs)


class FormApiClient(JsonApiClient):
    """JSON API client that sends form-encoded request bodies."""

    content_type = FORM_CONTENT_TYPE

    def _serialize_body(self, body: Any) -> str:
        return encode_form(body)
