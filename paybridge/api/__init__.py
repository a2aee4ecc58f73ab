"""HTTP ingest surface for provider webhooks."""

from paybridge.api.app import ErrorResponse, create_app
from paybridge.api.webhooks import (
    WebhookReceivedResponse,
    create_webhook_router,
    message_from_request,
    read_limited_body,
)

__all__ = [
    "create_app",
    "create_webhook_router",
    "message_from_request",
    "read_limited_body",
    "ErrorResponse",
    "WebhookReceivedResponse",
]
