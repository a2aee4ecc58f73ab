"""Outbound HTTP for provider APIs.

This module provides:
- JsonApiClient: async JSON client with uniform error classification
- FormApiClient: same contract with form-encoded request bodies
- SigningStrategy and its implementations for per-request authentication
"""

from paybridge.http.client import FormApiClient, JsonApiClient, encode_form
from paybridge.http.signing import (
    BearerTokenSigner,
    NoSigning,
    RequestBuilder,
    SigningStrategy,
    StaticHeaderSigner,
)

__all__ = [
    # Clients
    "JsonApiClient",
    "FormApiClient",
    "encode_form",
    # Signing
    "SigningStrategy",
    "RequestBuilder",
    "BearerTokenSigner",
    "StaticHeaderSigner",
    "NoSigning",
]
