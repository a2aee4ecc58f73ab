"""Inbound webhook ingestion, verification and routing.

This module provides:
- WebhookMessage: provider-independent envelope for one delivery
- WebhookBridge: process fan-out from the HTTP layer to consumers
- HMAC signature verification in the three provider envelope formats
"""

from paybridge.webhooks.bridge import (
    DEFAULT_BRIDGE_CAPACITY,
    WebhookBridge,
    WebhookSubscription,
    get_webhook_bridge,
    set_webhook_bridge,
)
from paybridge.webhooks.message import WebhookMessage
from paybridge.webhooks.security import (
    compute_signature,
    generate_body_signature,
    generate_timestamped_signature,
    generate_versioned_signature,
    parse_payload,
    verify_body_signature,
    verify_timestamped_signature,
    verify_versioned_signature,
)

__all__ = [
    # Message
    "WebhookMessage",
    # Bridge
    "DEFAULT_BRIDGE_CAPACITY",
    "WebhookBridge",
    "WebhookSubscription",
    "get_webhook_bridge",
    "set_webhook_bridge",
    # Security
    "compute_signature",
    "parse_payload",
    "generate_timestamped_signature",
    "verify_timestamped_signature",
    "generate_versioned_signature",
    "verify_versioned_signature",
    "generate_body_signature",
    "verify_body_signature",
]
