"""Tests for request signing strategies."""

import dataclasses

import httpx
import pytest

from paybridge.errors import SigningError
from paybridge.http.signing import (
    BearerTokenSigner,
    NoSigning,
    RequestBuilder,
    StaticHeaderSigner,
)

URL = httpx.URL("https://api.example.com/v1/things")


@pytest.fixture
def builder():
    """Empty GET request builder."""
    return RequestBuilder(method="GET", url=URL)


# ============================================================================
# RequestBuilder Tests
# ============================================================================


class TestRequestBuilder:
    """Tests for RequestBuilder."""

    def test_header_chains(self, builder):
        """Test that header() returns the builder."""
        result = builder.header("X-One", "1").header("X-Two", "2")

        assert result is builder
        assert builder.headers == {"X-One": "1", "X-Two": "2"}

    def test_header_overwrites(self, builder):
        """Test that setting a header twice keeps the last value."""
        builder.header("X-One", "1").header("X-One", "2")

        assert builder.headers["X-One"] == "2"


# ============================================================================
# Strategy Tests
# ============================================================================


class TestNoSigning:
    """Tests for NoSigning."""

    def test_passthrough(self, builder):
        """Test that no headers are added."""
        result = NoSigning().sign("GET", URL, None, builder)

        assert result is builder
        assert builder.headers == {}


class TestStaticHeaderSigner:
    """Tests for StaticHeaderSigner."""

    def test_sets_authorization(self, builder):
        """Test that the value is sent verbatim in Authorization."""
        StaticHeaderSigner("Bearer abc123").sign("GET", URL, None, builder)

        assert builder.headers["Authorization"] == "Bearer abc123"

    def test_custom_header(self, builder):
        """Test signing with a custom header name."""
        StaticHeaderSigner("key-1", header="X-Api-Key").sign("GET", URL, None, builder)

        assert builder.headers == {"X-Api-Key": "key-1"}

    def test_empty_value_rejected(self, builder):
        """Test that an empty value is a signing error."""
        with pytest.raises(SigningError, match="Empty"):
            StaticHeaderSigner("").sign("GET", URL, None, builder)

    def test_newline_rejected(self, builder):
        """Test that header injection is refused."""
        with pytest.raises(SigningError, match="invalid characters"):
            StaticHeaderSigner("abc\r\nX-Evil: 1").sign("GET", URL, None, builder)


class TestBearerTokenSigner:
    """Tests for BearerTokenSigner."""

    def test_bearer_header(self, builder):
        """Test Authorization: Bearer header."""
        BearerTokenSigner("sk_test_123").sign("POST", URL, "{}", builder)

        assert builder.headers == {"Authorization": "Bearer sk_test_123"}

    def test_api_version_header(self, builder):
        """Test that an API version adds the version header."""
        signer = BearerTokenSigner(
            "tok", api_version="2024-09-01", version_header="Revolut-Api-Version"
        )
        signer.sign("GET", URL, None, builder)

        assert builder.headers["Authorization"] == "Bearer tok"
        assert builder.headers["Revolut-Api-Version"] == "2024-09-01"

    def test_token_with_space_rejected(self, builder):
        """Test that a token containing whitespace is refused."""
        with pytest.raises(SigningError, match="whitespace"):
            BearerTokenSigner("two words").sign("GET", URL, None, builder)

    def test_non_ascii_token_rejected(self, builder):
        """Test that a non-ASCII token is refused."""
        with pytest.raises(SigningError):
            BearerTokenSigner("tøken").sign("GET", URL, None, builder)

    def test_signer_is_immutable(self):
        """Test that strategies hold no mutable state."""
        signer = BearerTokenSigner("tok")

        with pytest.raises(dataclasses.FrozenInstanceError):
            signer.token = "other"  # type: ignore[misc]

    def test_reusable_across_requests(self):
        """Test that one signer instance signs independent builders."""
        signer = BearerTokenSigner("tok")
        first = signer.sign("GET", URL, None, RequestBuilder("GET", URL))
        second = signer.sign("DELETE", URL, None, RequestBuilder("DELETE", URL))

        assert first is not second
        assert first.headers == second.headers
