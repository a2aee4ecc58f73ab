"""Stripe API integration.

Stripe takes form-encoded request bodies and answers with JSON, so the
client is a ``FormApiClient``. Orders with line items become checkout
sessions; plain amounts become payment intents.
"""

from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from paybridge.errors import PaymentsError
from paybridge.fiat.models import (
    Currency,
    FiatPaymentInfo,
    FiatPaymentService,
    LineItem,
    fiat_currency,
)
from paybridge.http.client import FormApiClient
from paybridge.http.signing import BearerTokenSigner
from paybridge.webhooks.message import WebhookMessage
from paybridge.webhooks.security import verify_timestamped_signature

logger = structlog.get_logger(__name__)

STRIPE_API_URL = "https://api.stripe.com"
SIGNATURE_HEADER = "stripe-signature"

PAYMENT_INTENT_PREFIX = "pi_"
CHECKOUT_SESSION_PREFIX = "cs_"


class StripeConfig(BaseModel):
    """Stripe credentials.

    Attributes:
        url: API base URL, defaults to production.
        api_key: Secret API key.
        webhook_secret: Endpoint signing secret (``whsec_...``).
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    api_key: str = Field(alias="api-key")
    webhook_secret: str | None = Field(default=None, alias="webhook-secret")


# ============================================================================
# Webhook endpoints
# ============================================================================


class StripeWebhook(BaseModel):
    id: str
    object: str
    url: str
    enabled_events: list[str]
    secret: str | None = None
    status: str
    livemode: bool


class StripeWebhookList(BaseModel):
    object: str
    data: list[StripeWebhook]
    has_more: bool


class StripeDeletedObject(BaseModel):
    id: str
    object: str
    deleted: bool


class CreateWebhookRequest(BaseModel):
    url: str
    enabled_events: list[str]


# ============================================================================
# Checkout sessions
# ============================================================================


class RecurringData(BaseModel):
    interval: str  # day, week, month or year
    interval_count: int | None = None


class ProductData(BaseModel):
    name: str
    description: str | None = None
    images: list[str] | None = None
    metadata: dict[str, Any] | None = None


class PriceData(BaseModel):
    currency: str
    unit_amount: int
    product_data: ProductData
    recurring: RecurringData | None = None
    tax_behavior: str | None = None  # inclusive, exclusive or unspecified


class CheckoutLineItem(BaseModel):
    price: str | None = None
    price_data: PriceData | None = None
    quantity: int
    tax_rates: list[str] | None = None

    @classmethod
    def from_line_item(cls, item: LineItem) -> "CheckoutLineItem":
        """Convert a generic line item to inline price data.

        Tax details are carried in product metadata and priced as exclusive,
        i.e. added on top of the unit amount.
        """
        metadata: dict[str, Any] = {}
        if item.tax_amount is not None:
            metadata["tax_amount"] = item.tax_amount
        if item.tax_name is not None:
            metadata["tax_name"] = item.tax_name
        if item.metadata:
            metadata.update(item.metadata)

        return cls(
            price_data=PriceData(
                currency=item.currency.lower(),
                unit_amount=item.unit_amount,
                product_data=ProductData(
                    name=item.name,
                    description=item.description,
                    images=item.images,
                    metadata=metadata or None,
                ),
                tax_behavior="exclusive",
            ),
            quantity=item.quantity,
        )


class CreateCheckoutSessionRequest(BaseModel):
    line_items: list[CheckoutLineItem]
    mode: str = "payment"  # payment, subscription or setup
    success_url: str | None = None
    cancel_url: str | None = None
    customer_email: str | None = None
    customer: str | None = None
    client_reference_id: str | None = None
    metadata: dict[str, Any] | None = None
    expires_at: int | None = None


class UpdateCheckoutSessionRequest(BaseModel):
    metadata: dict[str, Any] | None = None


class StripeCheckoutSession(BaseModel):
    id: str
    object: str
    amount_subtotal: int | None = None
    amount_total: int | None = None
    currency: str | None = None
    customer: str | None = None
    customer_email: str | None = None
    payment_status: str
    status: str | None = None
    url: str | None = None
    expires_at: int
    livemode: bool
    client_reference_id: str | None = None
    metadata: dict[str, Any] | None = None
    payment_intent: str | None = None
    subscription: str | None = None


class StripeCheckoutSessionList(BaseModel):
    object: str
    data: list[StripeCheckoutSession]
    has_more: bool
    url: str


class StripeLineItem(BaseModel):
    id: str
    object: str
    amount_subtotal: int
    amount_total: int
    currency: str
    description: str
    price: dict[str, Any] | None = None
    quantity: int | None = None


class StripeLineItemList(BaseModel):
    object: str
    data: list[StripeLineItem]
    has_more: bool


# ============================================================================
# Payment intents
# ============================================================================


class StripePaymentIntentStatus(str, Enum):
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    CANCELED = "canceled"
    SUCCEEDED = "succeeded"


class CreatePaymentIntentRequest(BaseModel):
    amount: int
    currency: str
    description: str | None = None
    automatic_payment_methods: dict[str, bool] | None = None
    confirm: bool | None = None


class StripePaymentIntent(BaseModel):
    id: str
    object: str
    amount: int
    currency: str
    status: StripePaymentIntentStatus
    description: str | None = None
    client_secret: str | None = None
    customer: str | None = None


# ============================================================================
# Webhook events
# ============================================================================


class StripeEventData(BaseModel):
    object: dict[str, Any]


class StripeWebhookEvent(BaseModel):
    """A Stripe event delivered by webhook."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    event_type: str = Field(alias="type")
    data: StripeEventData

    @classmethod
    def verify(
        cls,
        secret: str | bytes,
        message: WebhookMessage,
        *,
        tolerance_seconds: int | None = None,
    ) -> "StripeWebhookEvent":
        """Verify the ``stripe-signature`` header and parse the event."""
        return verify_timestamped_signature(
            secret,
            message,
            model=cls,
            header=SIGNATURE_HEADER,
            tolerance_seconds=tolerance_seconds,
        )


# ============================================================================
# API client
# ============================================================================


class StripeApi(FiatPaymentService):
    """Stripe API client.

    Example:
        stripe = StripeApi(StripeConfig(api_key="sk_test_..."))
        info = await stripe.create_order("Order #123", 5000, "USD")
    """

    def __init__(
        self,
        config: StripeConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.api = FormApiClient(
            config.url or STRIPE_API_URL,
            signer=BearerTokenSigner(config.api_key),
            transport=transport,
        )
        self._logger = logger.bind(component="stripe_api")

    @property
    def webhook_secret(self) -> str | None:
        return self.config.webhook_secret

    # Webhook endpoints

    async def list_webhooks(self) -> StripeWebhookList:
        return await self.api.get("/v1/webhook_endpoints", response_type=StripeWebhookList)

    async def create_webhook(self, url: str, enabled_events: list[str]) -> StripeWebhook:
        webhook = await self.api.post(
            "/v1/webhook_endpoints",
            CreateWebhookRequest(url=url, enabled_events=enabled_events),
            response_type=StripeWebhook,
        )
        self._logger.info("webhook_created", webhook_id=webhook.id, url=url)
        return webhook

    async def delete_webhook(self, webhook_id: str) -> StripeDeletedObject:
        deleted = await self.api.delete(
            f"/v1/webhook_endpoints/{webhook_id}", response_type=StripeDeletedObject
        )
        self._logger.info("webhook_deleted", webhook_id=webhook_id)
        return deleted

    # Checkout sessions

    async def create_checkout_session(
        self, request: CreateCheckoutSessionRequest
    ) -> StripeCheckoutSession:
        return await self.api.post(
            "/v1/checkout/sessions", request, response_type=StripeCheckoutSession
        )

    async def get_checkout_session(self, session_id: str) -> StripeCheckoutSession:
        return await self.api.get(
            f"/v1/checkout/sessions/{session_id}", response_type=StripeCheckoutSession
        )

    async def update_checkout_session(
        self, session_id: str, request: UpdateCheckoutSessionRequest
    ) -> StripeCheckoutSession:
        return await self.api.post(
            f"/v1/checkout/sessions/{session_id}", request, response_type=StripeCheckoutSession
        )

    async def list_checkout_sessions(self, limit: int | None = None) -> StripeCheckoutSessionList:
        path = "/v1/checkout/sessions"
        if limit is not None:
            path = f"{path}?limit={limit}"
        return await self.api.get(path, response_type=StripeCheckoutSessionList)

    async def get_checkout_session_line_items(self, session_id: str) -> StripeLineItemList:
        return await self.api.get(
            f"/v1/checkout/sessions/{session_id}/line_items", response_type=StripeLineItemList
        )

    async def expire_checkout_session(self, session_id: str) -> StripeCheckoutSession:
        session = await self.api.post(
            f"/v1/checkout/sessions/{session_id}/expire", response_type=StripeCheckoutSession
        )
        self._logger.info("checkout_session_expired", session_id=session_id)
        return session

    # Payment intents

    async def create_payment_intent(
        self,
        amount: int,
        currency: str | Currency,
        description: str | None = None,
    ) -> StripePaymentIntent:
        """Create and confirm a payment intent.

        Raises:
            ValueError: If the currency is ``BTC`` or unknown.
        """
        request = CreatePaymentIntentRequest(
            amount=amount,
            currency=fiat_currency(currency).value.lower(),
            description=description,
            automatic_payment_methods={"enabled": True},
            confirm=True,
        )
        return await self.api.post("/v1/payment_intents", request, response_type=StripePaymentIntent)

    async def get_payment_intent(self, payment_intent_id: str) -> StripePaymentIntent:
        return await self.api.get(
            f"/v1/payment_intents/{payment_intent_id}", response_type=StripePaymentIntent
        )

    async def cancel_payment_intent(self, payment_intent_id: str) -> StripePaymentIntent:
        intent = await self.api.post(
            f"/v1/payment_intents/{payment_intent_id}/cancel", response_type=StripePaymentIntent
        )
        self._logger.info("payment_intent_canceled", payment_intent_id=payment_intent_id)
        return intent

    # FiatPaymentService

    async def create_order(
        self,
        description: str,
        amount: int,
        currency: str | Currency,
        line_items: list[LineItem] | None = None,
    ) -> FiatPaymentInfo:
        if line_items is not None:
            fiat_currency(currency)
            session = await self.create_checkout_session(
                CreateCheckoutSessionRequest(
                    line_items=[CheckoutLineItem.from_line_item(item) for item in line_items],
                    client_reference_id=description,
                )
            )
            self._logger.info("order_created", kind="checkout_session", order_id=session.id)
            return FiatPaymentInfo(
                external_id=session.id,
                raw_data=session.model_dump_json(exclude_none=True),
            )

        intent = await self.create_payment_intent(amount, currency, description)
        self._logger.info("order_created", kind="payment_intent", order_id=intent.id)
        return FiatPaymentInfo(
            external_id=intent.id,
            raw_data=intent.model_dump_json(exclude_none=True),
        )

    async def cancel_order(self, order_id: str) -> None:
        """Cancel a payment intent or expire a checkout session.

        IDs without a known prefix are tried as a payment intent first,
        then as a checkout session.
        """
        if order_id.startswith(PAYMENT_INTENT_PREFIX):
            await self.cancel_payment_intent(order_id)
        elif order_id.startswith(CHECKOUT_SESSION_PREFIX):
            await self.expire_checkout_session(order_id)
        else:
            try:
                await self.cancel_payment_intent(order_id)
            except PaymentsError as e:
                self._logger.info(
                    "payment_intent_cancel_failed",
                    order_id=order_id,
                    error=str(e),
                )
                await self.expire_checkout_session(order_id)

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> "StripeApi":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
