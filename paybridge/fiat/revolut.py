"""Revolut Merchant API integration.

Covers order creation and cancellation, webhook endpoint management and
verification of inbound webhook deliveries.
"""

from datetime import datetime
from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from paybridge.fiat.models import (
    Currency,
    FiatPaymentInfo,
    FiatPaymentService,
    LineItem,
    fiat_currency,
)
from paybridge.http.client import JsonApiClient
from paybridge.http.signing import BearerTokenSigner
from paybridge.webhooks.message import WebhookMessage
from paybridge.webhooks.security import verify_versioned_signature

logger = structlog.get_logger(__name__)

REVOLUT_API_URL = "https://merchant.revolut.com"
API_VERSION_HEADER = "Revolut-Api-Version"
SIGNATURE_HEADER = "revolut-signature"
TIMESTAMP_HEADER = "revolut-request-timestamp"


class RevolutConfig(BaseModel):
    """Revolut Merchant API credentials.

    Attributes:
        url: API base URL, defaults to production.
        api_version: Value of the ``Revolut-Api-Version`` header.
        token: Secret API key.
        public_key: Public key handed to the checkout widget.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    api_version: str = Field(alias="api-version")
    token: str
    public_key: str = Field(alias="public-key")


# ============================================================================
# Enums
# ============================================================================


class RevolutOrderState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    AUTHORISED = "authorised"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class RevolutPaymentState(str, Enum):
    PENDING = "pending"
    AUTHENTICATION_CHALLENGE = "authentication_challenge"
    AUTHENTICATION_VERIFIED = "authentication_verified"
    AUTHORISATION_STARTED = "authorisation_started"
    AUTHORISATION_PASSED = "authorisation_passed"
    AUTHORISED = "authorised"
    CAPTURE_STARTED = "capture_started"
    CAPTURED = "captured"
    REFUND_VALIDATED = "refund_validated"
    REFUND_STARTED = "refund_started"
    CANCELLATION_STARTED = "cancellation_started"
    DECLINING = "declining"
    COMPLETING = "completing"
    CANCELLING = "cancelling"
    FAILING = "failing"
    COMPLETED = "completed"
    DECLINED = "declined"
    SOFT_DECLINED = "soft_declined"
    CANCELLED = "cancelled"
    FAILED = "failed"


class RevolutPaymentMethodType(str, Enum):
    APPLE_PAY = "apple_pay"
    CARD = "card"
    GOOGLE_PAY = "google_pay"
    REVOLUT_PAY_CARD = "revolut_pay_card"
    REVOLUT_PAY_ACCOUNT = "revolut_pay_account"


class RevolutLineItemType(str, Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"
    SERVICE = "service"


class RevolutWebhookEvent(str, Enum):
    """Order events Revolut can deliver by webhook."""

    ORDER_AUTHORISED = "ORDER_AUTHORISED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_CANCELLED = "ORDER_CANCELLED"


# ============================================================================
# Line items
# ============================================================================


class RevolutQuantity(BaseModel):
    value: int
    unit: str | None = None


class RevolutTax(BaseModel):
    name: str
    amount: int


class RevolutDiscount(BaseModel):
    name: str
    amount: int


class RevolutLineItem(BaseModel):
    """Line item in Revolut's order format."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    item_type: RevolutLineItemType | None = Field(default=None, alias="type")
    quantity: RevolutQuantity
    unit_price_amount: int
    total_amount: int
    external_id: str | None = None
    discounts: list[RevolutDiscount] | None = None
    taxes: list[RevolutTax] | None = None
    image_urls: list[str] | None = None
    url: str | None = None

    @classmethod
    def simple(cls, name: str, quantity: int, unit_price_amount: int) -> "RevolutLineItem":
        """Line item without taxes or discounts."""
        return cls(
            name=name,
            quantity=RevolutQuantity(value=quantity),
            unit_price_amount=unit_price_amount,
            total_amount=quantity * unit_price_amount,
        )

    @classmethod
    def from_line_item(cls, item: LineItem) -> "RevolutLineItem":
        """Convert a generic line item, carrying its tax as a single entry."""
        taxes = None
        if item.tax_amount is not None and item.tax_name is not None:
            taxes = [RevolutTax(name=item.tax_name, amount=item.tax_amount)]
        return cls(
            name=item.name,
            description=item.description,
            quantity=RevolutQuantity(value=item.quantity),
            unit_price_amount=item.unit_amount,
            total_amount=item.total_amount(),
            taxes=taxes,
            image_urls=item.images,
        )

    def with_discounts(self, discounts: list[RevolutDiscount]) -> "RevolutLineItem":
        """Apply discounts, recomputing the total (floored at zero)."""
        discount_total = sum(d.amount for d in discounts)
        subtotal = self.quantity.value * self.unit_price_amount
        return self.model_copy(
            update={"discounts": discounts, "total_amount": max(subtotal - discount_total, 0)}
        )

    def with_taxes(self, taxes: list[RevolutTax]) -> "RevolutLineItem":
        """Add taxes on top of the current total."""
        tax_total = sum(t.amount for t in taxes)
        return self.model_copy(
            update={"taxes": taxes, "total_amount": self.total_amount + tax_total}
        )


# ============================================================================
# Orders
# ============================================================================


class RevolutBillingAddress(BaseModel):
    street_line_1: str | None = None
    street_line_2: str | None = None
    region: str | None = None
    city: str | None = None
    country_code: str
    postcode: str


class RevolutPaymentMethod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    kind: RevolutPaymentMethodType = Field(alias="type")
    card_brand: str | None = None
    funding: str | None = None
    card_country_code: str | None = None
    card_bin: str | None = None
    card_last_four: str | None = None
    card_expiry: str | None = None
    cardholder_name: str | None = None


class RevolutOrderPayment(BaseModel):
    id: str
    state: RevolutPaymentState
    decline_reason: str | None = None
    bank_message: str | None = None
    created_at: datetime
    updated_at: datetime
    token: str | None = None
    amount: int
    currency: str | None = None
    settled_amount: int | None = None
    settled_currency: str | None = None
    payment_method: RevolutPaymentMethod | None = None
    billing_address: RevolutBillingAddress | None = None
    risk_level: str | None = None


class RevolutOrder(BaseModel):
    """A Revolut merchant order."""

    id: str
    token: str
    state: RevolutOrderState
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    amount: int
    currency: str
    outstanding_amount: int
    checkout_url: str | None = None
    payments: list[RevolutOrderPayment] | None = None
    line_items: list[RevolutLineItem] | None = None


class CreateOrderRequest(BaseModel):
    amount: int
    currency: str
    description: str | None = None
    line_items: list[RevolutLineItem] | None = None


# ============================================================================
# Webhooks
# ============================================================================


class RevolutWebhook(BaseModel):
    """A registered webhook endpoint."""

    id: str
    url: str
    events: list[RevolutWebhookEvent]
    signing_secret: str | None = None


class CreateWebhookRequest(BaseModel):
    url: str
    events: list[RevolutWebhookEvent]


class RevolutWebhookBody(BaseModel):
    """Body of an order webhook delivery."""

    event: RevolutWebhookEvent
    order_id: str
    merchant_order_ext_ref: str | None = None

    @classmethod
    def verify(
        cls,
        secret: str | bytes,
        message: WebhookMessage,
        *,
        tolerance_seconds: int | None = None,
    ) -> "RevolutWebhookBody":
        """Verify the ``revolut-signature`` header list and parse the body."""
        return verify_versioned_signature(
            secret,
            message,
            model=cls,
            signature_header=SIGNATURE_HEADER,
            timestamp_header=TIMESTAMP_HEADER,
            tolerance_seconds=tolerance_seconds,
        )


# ============================================================================
# API client
# ============================================================================


class RevolutApi(FiatPaymentService):
    """Revolut Merchant API client.

    Example:
        revolut = RevolutApi(RevolutConfig(api_version="2024-09-01", token=key, public_key=pk))
        info = await revolut.create_order("Order #1", 1999, "EUR")
    """

    def __init__(
        self,
        config: RevolutConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.api = JsonApiClient(
            config.url or REVOLUT_API_URL,
            signer=BearerTokenSigner(
                config.token,
                api_version=config.api_version,
                version_header=API_VERSION_HEADER,
            ),
            transport=transport,
        )
        self._logger = logger.bind(component="revolut_api")

    # Webhook endpoints

    async def list_webhooks(self) -> list[RevolutWebhook]:
        return await self.api.get("/api/1.0/webhooks", response_type=list[RevolutWebhook])

    async def create_webhook(
        self, url: str, events: list[RevolutWebhookEvent]
    ) -> RevolutWebhook:
        webhook = await self.api.post(
            "/api/1.0/webhooks",
            CreateWebhookRequest(url=url, events=events),
            response_type=RevolutWebhook,
        )
        self._logger.info("webhook_created", webhook_id=webhook.id, url=url)
        return webhook

    async def delete_webhook(self, webhook_id: str) -> None:
        """Delete a webhook endpoint; the empty response body is ignored."""
        await self.api.request_status("DELETE", f"/api/1.0/webhooks/{webhook_id}")
        self._logger.info("webhook_deleted", webhook_id=webhook_id)

    # Orders

    async def create_merchant_order(
        self,
        amount: int,
        currency: str | Currency,
        description: str | None = None,
        line_items: list[LineItem] | None = None,
    ) -> RevolutOrder:
        """Create an order.

        Raises:
            ValueError: If the currency is ``BTC`` or unknown.
        """
        request = CreateOrderRequest(
            amount=amount,
            currency=fiat_currency(currency).value,
            description=description,
            line_items=(
                [RevolutLineItem.from_line_item(item) for item in line_items]
                if line_items is not None
                else None
            ),
        )
        order = await self.api.post("/api/orders", request, response_type=RevolutOrder)
        self._logger.info("order_created", order_id=order.id, amount=amount)
        return order

    async def get_order(self, order_id: str) -> RevolutOrder:
        return await self.api.get(f"/api/orders/{order_id}", response_type=RevolutOrder)

    async def cancel_merchant_order(self, order_id: str) -> RevolutOrder:
        order = await self.api.post(f"/api/orders/{order_id}/cancel", response_type=RevolutOrder)
        self._logger.info("order_canceled", order_id=order_id)
        return order

    # FiatPaymentService

    async def create_order(
        self,
        description: str,
        amount: int,
        currency: str | Currency,
        line_items: list[LineItem] | None = None,
    ) -> FiatPaymentInfo:
        order = await self.create_merchant_order(amount, currency, description, line_items)
        return FiatPaymentInfo(
            external_id=order.id,
            raw_data=order.model_dump_json(exclude_none=True, by_alias=True),
        )

    async def cancel_order(self, order_id: str) -> None:
        await self.cancel_merchant_order(order_id)

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> "RevolutApi":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
