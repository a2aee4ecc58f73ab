"""Webhook ingest endpoints.

Captures raw provider deliveries and publishes them on the webhook bridge.
Nothing is verified here: each provider consumer checks signatures with its
own secret after receiving the message from the bridge.
"""

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from paybridge.config import settings
from paybridge.webhooks.bridge import WebhookBridge
from paybridge.webhooks.message import WebhookMessage

logger = structlog.get_logger(__name__)


# ============================================================================
# Response Models
# ============================================================================


class WebhookReceivedResponse(BaseModel):
    """Acknowledgement returned to the provider."""

    received: bool = True
    subscribers: int = Field(..., description="Consumers the delivery was handed to")


# ============================================================================
# Body capture
# ============================================================================


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, rejecting it once it exceeds ``max_bytes``.

    Raises:
        HTTPException: 413 if the declared or streamed size is too large.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise HTTPException(status_code=413, detail="Webhook body too large")

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise HTTPException(status_code=413, detail="Webhook body too large")
        chunks.append(chunk)
    return b"".join(chunks)


def message_from_request(request: Request, body: bytes) -> WebhookMessage:
    """Build a message from the request path, headers and raw body.

    Repeated headers collapse to the last value.
    """
    headers = {name: value for name, value in request.headers.items()}
    return WebhookMessage(endpoint=request.url.path, body=body, headers=headers)


# ============================================================================
# Router
# ============================================================================


def create_webhook_router(
    bridge: WebhookBridge,
    prefix: str | None = None,
    max_body_bytes: int | None = None,
) -> APIRouter:
    """Create the webhook ingest router.

    Args:
        bridge: Bridge deliveries are published on.
        prefix: Path prefix (defaults to ``WEBHOOK_PATH_PREFIX``).
        max_body_bytes: Body size limit (defaults to ``WEBHOOK_MAX_BODY_BYTES``).

    Returns:
        Router exposing ``POST {prefix}/{provider}``.
    """
    router = APIRouter(prefix=prefix or settings.WEBHOOK_PATH_PREFIX, tags=["Webhooks"])
    limit = max_body_bytes or settings.WEBHOOK_MAX_BODY_BYTES

    @router.post("/{provider}", response_model=WebhookReceivedResponse)
    async def receive_webhook(provider: str, request: Request) -> WebhookReceivedResponse:
        """Receive one webhook delivery from ``provider``."""
        try:
            body = await read_limited_body(request, limit)
        except HTTPException:
            logger.warning("webhook_body_too_large", provider=provider, limit=limit)
            raise

        message = message_from_request(request, body)
        subscribers = bridge.publish(message)

        logger.info(
            "webhook_received",
            provider=provider,
            endpoint=message.endpoint,
            size=len(body),
            subscribers=subscribers,
        )
        return WebhookReceivedResponse(subscribers=subscribers)

    return router
