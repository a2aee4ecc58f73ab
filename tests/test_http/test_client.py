"""Tests for the authenticated JSON API client."""

import json

import httpx
import pytest
from pydantic import BaseModel

from paybridge.errors import (
    ApiStatusError,
    RequestBuildError,
    ResponseDecodeError,
    SigningError,
    TransportError,
)
from paybridge.http.client import FormApiClient, JsonApiClient, encode_form
from paybridge.http.signing import BearerTokenSigner, RequestBuilder, SigningStrategy

BASE_URL = "https://api.example.com"


class Thing(BaseModel):
    """Sample response model."""

    id: str
    count: int


class RecordingSigner(SigningStrategy):
    """Signer that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, httpx.URL, str | None]] = []

    def sign(self, method, url, body, request: RequestBuilder) -> RequestBuilder:
        self.calls.append((method, url, body))
        return request.header("X-Signature", f"sig-{len(self.calls)}")


class FailingSigner(SigningStrategy):
    """Signer that always fails."""

    def sign(self, method, url, body, request):
        raise SigningError("no credentials")


def make_client(handler, client_class=JsonApiClient, **kwargs):
    """Create a client whose requests are answered by ``handler``."""
    return client_class(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


# ============================================================================
# Construction Tests
# ============================================================================


class TestJsonApiClientInit:
    """Tests for JsonApiClient construction."""

    def test_invalid_base_url(self):
        """Test that a base URL without scheme/host is rejected."""
        with pytest.raises(RequestBuildError, match="Invalid base URL"):
            JsonApiClient("not a url")

    def test_default_timeouts(self):
        """Test default total and connect timeouts."""
        client = JsonApiClient(BASE_URL)
        timeout = client._get_client().timeout

        assert timeout.read == 30.0
        assert timeout.connect == 10.0

    def test_custom_timeouts(self):
        """Test overriding timeouts."""
        client = JsonApiClient(BASE_URL, timeout=5.0, connect_timeout=1.0)
        timeout = client._get_client().timeout

        assert timeout.read == 5.0
        assert timeout.connect == 1.0

    @pytest.mark.asyncio
    async def test_close_recreates_client(self):
        """Test that the underlying client is recreated after close."""
        client = JsonApiClient(BASE_URL)
        first = client._get_client()
        await client.close()

        assert first.is_closed
        assert client._get_client() is not first


# ============================================================================
# Request Building Tests
# ============================================================================


class TestBuildRequest:
    """Tests for request building and signing."""

    @pytest.mark.asyncio
    async def test_get_without_signer(self):
        """Test base URL join with no authentication header."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler) as client:
            result = await client.get("/test")

        assert result == {"ok": True}
        assert str(seen[0].url) == "https://api.example.com/test"
        assert seen[0].method == "GET"
        assert "authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_default_headers(self):
        """Test User-Agent and Accept headers."""
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            await client.get("/test")

        assert seen[0].headers["user-agent"] == "paybridge/1.0"
        assert seen[0].headers["accept"] == "application/json"
        assert "content-type" not in seen[0].headers

    def test_empty_path_rejected(self):
        """Test that an empty path is a build error."""
        client = JsonApiClient(BASE_URL)

        with pytest.raises(RequestBuildError, match="must not be empty"):
            client.build_request("GET", "")

    def test_unserializable_body_rejected(self):
        """Test that a body json cannot encode is a build error."""
        client = JsonApiClient(BASE_URL)

        with pytest.raises(RequestBuildError, match="Cannot serialize"):
            client.build_request("POST", "/things", {"when": object()})

    def test_body_is_compact_json(self):
        """Test body serialization and content type."""
        client = JsonApiClient(BASE_URL)
        request = client.build_request("POST", "/things", {"a": 1, "b": [1, 2]})

        assert request.content == b'{"a":1,"b":[1,2]}'
        assert request.headers["content-type"] == "application/json; charset=utf-8"

    def test_pydantic_body(self):
        """Test that pydantic models are dumped without None fields."""

        class Body(BaseModel):
            name: str
            note: str | None = None

        client = JsonApiClient(BASE_URL)
        request = client.build_request("POST", "/things", Body(name="x"))

        assert json.loads(request.content) == {"name": "x"}

    def test_signer_sees_serialized_body_once(self):
        """Test that the signer runs once with the exact body sent."""
        signer = RecordingSigner()
        client = JsonApiClient(BASE_URL, signer=signer)
        request = client.build_request("post", "/things", {"a": 1})

        assert len(signer.calls) == 1
        method, url, body = signer.calls[0]
        assert method == "POST"
        assert str(url) == "https://api.example.com/things"
        assert body == request.content.decode()
        assert request.headers["x-signature"] == "sig-1"

    def test_signer_sees_none_for_bodiless_request(self):
        """Test that GET requests are signed with no body."""
        signer = RecordingSigner()
        JsonApiClient(BASE_URL, signer=signer).build_request("GET", "/things")

        assert signer.calls[0][2] is None

    @pytest.mark.asyncio
    async def test_signing_failure_sends_nothing(self):
        """Test that a signing error aborts before dispatch."""
        sent: list[httpx.Request] = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler, signer=FailingSigner())

        with pytest.raises(SigningError, match="no credentials"):
            await client.get("/things")
        assert sent == []

    @pytest.mark.asyncio
    async def test_bearer_signer_header(self):
        """Test that the bearer strategy's header reaches the wire."""
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler, signer=BearerTokenSigner("tok")) as client:
            await client.get("/things")

        assert seen[0].headers["authorization"] == "Bearer tok"


# ============================================================================
# Response Handling Tests
# ============================================================================


class TestResponseHandling:
    """Tests for status and decode error classification."""

    @pytest.mark.asyncio
    async def test_response_type(self):
        """Test decoding into a pydantic model."""

        def handler(request):
            return httpx.Response(200, json={"id": "t1", "count": 3})

        async with make_client(handler) as client:
            thing = await client.get("/things/t1", response_type=Thing)

        assert thing == Thing(id="t1", count=3)

    @pytest.mark.asyncio
    async def test_response_type_list(self):
        """Test decoding into a list of models."""

        def handler(request):
            return httpx.Response(200, json=[{"id": "a", "count": 1}])

        async with make_client(handler) as client:
            things = await client.get("/things", response_type=list[Thing])

        assert things == [Thing(id="a", count=1)]

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        """Test that non-2xx responses raise ApiStatusError."""

        def handler(request):
            return httpx.Response(404, text="not found")

        async with make_client(handler) as client:
            with pytest.raises(ApiStatusError) as exc_info:
                await client.get("/missing")

        error = exc_info.value
        assert error.status_code == 404
        assert error.body == "not found"
        assert error.method == "GET"
        assert str(error) == "GET /missing: 404: not found"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test that a 2xx non-JSON body raises ResponseDecodeError."""

        def handler(request):
            return httpx.Response(200, text="<html>")

        async with make_client(handler) as client:
            with pytest.raises(ResponseDecodeError) as exc_info:
                await client.get("/things")

        assert exc_info.value.body == "<html>"
        assert exc_info.value.path == "/things"

    @pytest.mark.asyncio
    async def test_schema_mismatch(self):
        """Test that a body failing validation raises ResponseDecodeError."""

        def handler(request):
            return httpx.Response(200, json={"id": "t1"})

        async with make_client(handler) as client:
            with pytest.raises(ResponseDecodeError):
                await client.get("/things/t1", response_type=Thing)

    @pytest.mark.asyncio
    async def test_connect_error(self):
        """Test that connection failures raise TransportError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.get("/things")

        assert exc_info.value.method == "GET"
        assert "Failed to send request GET /things" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that timeouts raise TransportError."""

        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError, match="timeout"):
                await client.get("/things")

    @pytest.mark.asyncio
    async def test_request_status_ignores_body(self):
        """Test request_status with an empty 204 body."""

        def handler(request):
            return httpx.Response(204)

        async with make_client(handler) as client:
            status = await client.request_status("DELETE", "/things/1")

        assert status == 204

    @pytest.mark.asyncio
    async def test_request_status_error(self):
        """Test request_status still classifies non-2xx."""

        def handler(request):
            return httpx.Response(500, text="boom")

        async with make_client(handler) as client:
            with pytest.raises(ApiStatusError):
                await client.request_status("DELETE", "/things/1")

    @pytest.mark.asyncio
    async def test_put_and_delete(self):
        """Test PUT and DELETE helpers."""
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler) as client:
            await client.put("/things/1", {"count": 2})
            await client.delete("/things/1")

        assert [r.method for r in seen] == ["PUT", "DELETE"]
        assert seen[0].content == b'{"count":2}'


# ============================================================================
# Form Encoding Tests
# ============================================================================


class TestFormEncoding:
    """Tests for encode_form and FormApiClient."""

    def test_flat(self):
        """Test flat mapping."""
        assert encode_form({"amount": 100, "currency": "usd"}) == "amount=100&currency=usd"

    def test_nested_and_lists(self):
        """Test bracket notation for nested values."""
        body = {"line_items": [{"price_data": {"unit_amount": 5}, "quantity": 2}]}

        assert encode_form(body) == (
            "line_items%5B0%5D%5Bprice_data%5D%5Bunit_amount%5D=5"
            "&line_items%5B0%5D%5Bquantity%5D=2"
        )

    def test_bools_and_none(self):
        """Test boolean rendering and omission of None."""
        assert encode_form({"confirm": True, "description": None}) == "confirm=true"

    def test_non_mapping_rejected(self):
        """Test that a list body is refused."""
        with pytest.raises(TypeError):
            encode_form([1, 2])

    def test_form_client_content_type(self):
        """Test FormApiClient body and content type."""
        client = FormApiClient(BASE_URL)
        request = client.build_request("POST", "/v1/payment_intents", {"amount": 100})

        assert request.content == b"amount=100"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
