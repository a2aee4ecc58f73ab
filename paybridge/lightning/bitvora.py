"""Bitvora custodial Lightning integration.

Invoices are created over Bitvora's REST API; settlement is announced by
webhook, so ``subscribe_invoices`` reads from the webhook bridge and maps
verified deliveries to normalized invoice updates.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from paybridge.errors import (
    BridgeLaggedError,
    InvoiceParseError,
    ProviderError,
    SubscriptionClosedError,
    UnsupportedOperationError,
    WebhookVerificationError,
)
from paybridge.http.client import JsonApiClient
from paybridge.http.signing import StaticHeaderSigner
from paybridge.lightning.models import (
    AddInvoiceRequest,
    AddInvoiceResponse,
    InvoiceError,
    InvoiceSettled,
    InvoiceStream,
    InvoiceUnknown,
    InvoiceUpdate,
    PayInvoiceRequest,
    PayInvoiceResponse,
    payment_hash_of,
)
from paybridge.lightning.node import LightningNode
from paybridge.webhooks.bridge import WebhookBridge, WebhookSubscription
from paybridge.webhooks.message import WebhookMessage
from paybridge.webhooks.security import verify_body_signature

logger = structlog.get_logger(__name__)

BITVORA_API_URL = "https://api.bitvora.com/"
SIGNATURE_HEADER = "bitvora-signature"
DEFAULT_EXPIRY_SECONDS = 3600

DEPOSIT_COMPLETED = "deposit.lightning.completed"
DEPOSIT_FAILED = "deposit.lightning.failed"


class BitvoraPayment(BaseModel):
    """Payment details carried by a Bitvora webhook."""

    id: str
    lightning_invoice_id: str
    recipient: str  # BOLT11 payment request


class BitvoraWebhook(BaseModel):
    """Bitvora webhook body."""

    event: str
    data: BitvoraPayment

    @classmethod
    def verify(cls, secret: str | bytes, message: WebhookMessage) -> "BitvoraWebhook":
        """Verify the ``bitvora-signature`` HMAC and parse the body."""
        return verify_body_signature(secret, message, model=cls, header=SIGNATURE_HEADER)


class _CreatedInvoice(BaseModel):
    id: str
    r_hash: str
    payment_request: str


class _CreateInvoiceEnvelope(BaseModel):
    status: int
    message: str | None = None
    data: _CreatedInvoice | None = None


class BitvoraNode(LightningNode):
    """Lightning node backed by the Bitvora API.

    Example:
        node = BitvoraNode(token, secret, "/webhooks/bitvora", bridge)
        invoice = await node.add_invoice(AddInvoiceRequest(amount_msat=21_000))
        async for update in await node.subscribe_invoices():
            ...
    """

    def __init__(
        self,
        api_token: str,
        webhook_secret: str,
        webhook_path: str,
        bridge: WebhookBridge,
        *,
        base_url: str = BITVORA_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the node.

        Args:
            api_token: Bitvora API token.
            webhook_secret: Secret used to sign webhook deliveries.
            webhook_path: Endpoint path Bitvora webhooks arrive on.
            bridge: Webhook bridge to read deliveries from.
            base_url: API base URL.
            transport: Optional httpx transport (used for testing).
        """
        self.api = JsonApiClient(
            base_url,
            signer=StaticHeaderSigner(f"Bearer {api_token}"),
            transport=transport,
        )
        self.webhook_path = webhook_path
        self._webhook_secret = webhook_secret
        self._bridge = bridge
        self._logger = logger.bind(component="bitvora_node")

    async def add_invoice(self, request: AddInvoiceRequest) -> AddInvoiceResponse:
        """Create a deposit invoice.

        Raises:
            ProviderError: If Bitvora reports an error status in the envelope.
        """
        body = {
            "amount": request.amount_msat // 1000,
            "currency": "sats",
            "description": request.memo or "",
            "expiry_seconds": (
                request.expire if request.expire is not None else DEFAULT_EXPIRY_SECONDS
            ),
        }
        envelope = await self.api.post(
            "/v1/bitcoin/deposit/lightning-invoice",
            body,
            response_type=_CreateInvoiceEnvelope,
        )
        if envelope.status >= 400 or envelope.data is None:
            raise ProviderError(
                f"API error: {envelope.status} {envelope.message or ''}".rstrip(),
                details={"status": envelope.status},
            )

        self._logger.info("invoice_created", external_id=envelope.data.id)
        return AddInvoiceResponse(
            payment_request=envelope.data.payment_request,
            payment_hash=envelope.data.r_hash,
            external_id=envelope.data.id,
        )

    async def cancel_invoice(self, payment_hash: bytes) -> None:
        raise UnsupportedOperationError("Bitvora does not support canceling invoices")

    async def pay_invoice(self, request: PayInvoiceRequest) -> PayInvoiceResponse:
        raise UnsupportedOperationError("Bitvora invoice payments are not supported")

    async def subscribe_invoices(
        self, from_payment_hash: bytes | None = None
    ) -> InvoiceStream:
        """Subscribe to settlement webhooks.

        Bitvora cannot replay past deliveries, so ``from_payment_hash`` is
        ignored. Closing the returned stream detaches it from the bridge.
        """
        subscription = self._bridge.subscribe()
        self._logger.info("invoice_subscription_started", webhook_path=self.webhook_path)
        return InvoiceStream(self._updates(subscription), subscription.close)

    async def _updates(self, subscription: WebhookSubscription) -> AsyncIterator[InvoiceUpdate]:
        async with subscription:
            while True:
                try:
                    message = await subscription.recv()
                except BridgeLaggedError as e:
                    self._logger.warning("webhook_subscription_lagged", skipped=e.skipped)
                    yield InvoiceError(str(e))
                    continue
                except SubscriptionClosedError as e:
                    yield InvoiceError(str(e))
                    return

                # Other providers share the bridge
                if message.endpoint != self.webhook_path:
                    continue

                yield self.map_webhook(message)

    def map_webhook(self, message: WebhookMessage) -> InvoiceUpdate:
        """Verify one delivery and map it to a normalized update."""
        self._logger.info("webhook_received", endpoint=message.endpoint, size=len(message.body))
        try:
            webhook = BitvoraWebhook.verify(self._webhook_secret, message)
        except WebhookVerificationError as e:
            self._logger.warning("webhook_rejected", error=e.to_dict())
            return InvoiceError(str(e))

        if webhook.event == DEPOSIT_FAILED:
            return InvoiceError("Payment failed")

        try:
            payment_hash = payment_hash_of(webhook.data.recipient)
        except InvoiceParseError as e:
            return InvoiceError(str(e))

        if webhook.event == DEPOSIT_COMPLETED:
            return InvoiceSettled(
                payment_hash=payment_hash,
                preimage=None,
                external_id=webhook.data.lightning_invoice_id,
            )

        self._logger.warning("webhook_event_unhandled", event=webhook.event)
        return InvoiceUnknown(payment_hash=payment_hash)

    async def close(self) -> None:
        """Close the API client."""
        await self.api.close()

    async def __aenter__(self) -> "BitvoraNode":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
