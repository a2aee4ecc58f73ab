"""Tests for the Bitvora Lightning node."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from paybridge.errors import ProviderError, UnsupportedOperationError
from paybridge.lightning.bitvora import BitvoraNode, BitvoraWebhook
from paybridge.lightning.models import (
    AddInvoiceRequest,
    InvoiceError,
    InvoiceSettled,
    InvoiceUnknown,
    PayInvoiceRequest,
)
from paybridge.webhooks.bridge import WebhookBridge
from paybridge.webhooks.message import WebhookMessage
from paybridge.webhooks.security import generate_body_signature

SECRET = "bitvora_secret"
WEBHOOK_PATH = "/webhooks/bitvora"
PAYMENT_HASH = "cd" * 32


def webhook_body(event: str = "deposit.lightning.completed") -> bytes:
    """Serialized Bitvora webhook."""
    return json.dumps(
        {
            "event": event,
            "data": {
                "id": "dep_1",
                "lightning_invoice_id": "inv_1",
                "recipient": "lnbc210n1...",
            },
        }
    ).encode()


def signed_message(body: bytes, endpoint: str = WEBHOOK_PATH, secret: str = SECRET):
    """Message signed the way Bitvora signs deliveries."""
    return WebhookMessage(
        endpoint, body, {"Bitvora-Signature": generate_body_signature(secret, body)}
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def bridge():
    """Fresh bridge."""
    return WebhookBridge(capacity=10)


@pytest.fixture
def node(bridge):
    """Node with no HTTP transport."""
    return BitvoraNode("tok", SECRET, WEBHOOK_PATH, bridge)


@pytest.fixture
def decoded():
    """Patch BOLT11 decoding to return a fixed payment hash."""
    with patch("bolt11.decode", return_value=MagicMock(payment_hash=PAYMENT_HASH)) as decode:
        yield decode


# ============================================================================
# Webhook Model Tests
# ============================================================================


class TestBitvoraWebhook:
    """Tests for BitvoraWebhook.verify."""

    def test_verify(self):
        """Test parsing a correctly signed body."""
        webhook = BitvoraWebhook.verify(SECRET, signed_message(webhook_body()))

        assert webhook.event == "deposit.lightning.completed"
        assert webhook.data.lightning_invoice_id == "inv_1"

    def test_unknown_event_kind_parses(self):
        """Test that event kinds are not restricted at parse time."""
        webhook = BitvoraWebhook.verify(SECRET, signed_message(webhook_body("deposit.other")))

        assert webhook.event == "deposit.other"


# ============================================================================
# Mapping Tests
# ============================================================================


class TestMapWebhook:
    """Tests for webhook to invoice update mapping."""

    def test_completed(self, node, decoded):
        """Test completed deposits map to settled."""
        update = node.map_webhook(signed_message(webhook_body()))

        assert update == InvoiceSettled(
            payment_hash=PAYMENT_HASH, preimage=None, external_id="inv_1"
        )
        decoded.assert_called_once_with("lnbc210n1...")

    def test_failed(self, node, decoded):
        """Test failed deposits map to an error."""
        update = node.map_webhook(signed_message(webhook_body("deposit.lightning.failed")))

        assert update == InvoiceError("Payment failed")

    def test_other_event(self, node, decoded):
        """Test unhandled kinds map to unknown with the decoded hash."""
        update = node.map_webhook(signed_message(webhook_body("deposit.lightning.pending")))

        assert update == InvoiceUnknown(payment_hash=PAYMENT_HASH)

    def test_bad_signature(self, node, decoded):
        """Test that a forged delivery becomes an error item."""
        update = node.map_webhook(signed_message(webhook_body(), secret="wrong"))

        assert isinstance(update, InvoiceError)
        decoded.assert_not_called()

    def test_undecodable_recipient(self, node):
        """Test that an invalid payment request becomes an error item."""
        with patch("bolt11.decode", side_effect=ValueError("bad invoice")):
            update = node.map_webhook(signed_message(webhook_body()))

        assert isinstance(update, InvoiceError)
        assert "Failed to parse invoice" in update.message

    def test_malformed_payload(self, node):
        """Test a signed body with the wrong shape."""
        update = node.map_webhook(signed_message(b'{"event":"x"}'))

        assert isinstance(update, InvoiceError)
        assert "payload malformed" in update.message


# ============================================================================
# Subscription Tests
# ============================================================================


class TestSubscribeInvoices:
    """Tests for the push-driven invoice stream."""

    @pytest.mark.asyncio
    async def test_subscribed_before_iteration(self, node, bridge, decoded):
        """Test that messages published right after subscribing are seen."""
        updates = await node.subscribe_invoices()
        assert bridge.subscriber_count == 1

        bridge.publish(signed_message(webhook_body()))
        update = await anext(updates)

        assert isinstance(update, InvoiceSettled)
        await updates.aclose()

    @pytest.mark.asyncio
    async def test_other_endpoints_ignored(self, node, bridge, decoded):
        """Test that deliveries for other providers are skipped."""
        updates = await node.subscribe_invoices()

        bridge.publish(WebhookMessage("/webhooks/stripe", b"{}", {}))
        bridge.publish(signed_message(webhook_body("deposit.lightning.failed")))

        assert await anext(updates) == InvoiceError("Payment failed")
        await updates.aclose()

    @pytest.mark.asyncio
    async def test_lag_yields_error_and_continues(self, decoded):
        """Test that a lagged subscription reports and keeps going."""
        bridge = WebhookBridge(capacity=1)
        node = BitvoraNode("tok", SECRET, WEBHOOK_PATH, bridge)
        updates = await node.subscribe_invoices()

        bridge.publish(signed_message(webhook_body("deposit.lightning.failed")))
        bridge.publish(signed_message(webhook_body()))

        first = await anext(updates)
        second = await anext(updates)

        assert isinstance(first, InvoiceError)
        assert "dropped" in first.message
        assert isinstance(second, InvoiceSettled)
        await updates.aclose()

    @pytest.mark.asyncio
    async def test_aclose_unsubscribes(self, node, bridge, decoded):
        """Test that closing the stream detaches from the bridge."""
        updates = await node.subscribe_invoices()
        bridge.publish(signed_message(webhook_body()))
        await anext(updates)

        await updates.aclose()

        assert bridge.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_aclose_before_iteration_unsubscribes(self, node, bridge):
        """Test that a stream closed without being read detaches from the bridge."""
        updates = await node.subscribe_invoices()

        await updates.aclose()
        for _ in range(10):
            bridge.publish(signed_message(webhook_body()))

        assert bridge.subscriber_count == 0
        assert updates.is_closed
        with pytest.raises(StopAsyncIteration):
            await anext(updates)

    @pytest.mark.asyncio
    async def test_async_with_unsubscribes(self, node, bridge):
        """Test that leaving the context detaches from the bridge."""
        async with await node.subscribe_invoices():
            assert bridge.subscriber_count == 1

        assert bridge.subscriber_count == 0


# ============================================================================
# API Tests
# ============================================================================


class TestBitvoraApi:
    """Tests for invoice creation over HTTP."""

    @pytest.mark.asyncio
    async def test_add_invoice(self, bridge):
        """Test request shape and response mapping."""
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": 200,
                    "message": "ok",
                    "data": {
                        "id": "inv_1",
                        "r_hash": PAYMENT_HASH,
                        "payment_request": "lnbc210n1...",
                    },
                },
            )

        node = BitvoraNode(
            "tok", SECRET, WEBHOOK_PATH, bridge, transport=httpx.MockTransport(handler)
        )
        response = await node.add_invoice(AddInvoiceRequest(amount_msat=21_000, memo="coffee"))
        await node.close()

        request = seen[0]
        assert str(request.url) == "https://api.bitvora.com/v1/bitcoin/deposit/lightning-invoice"
        assert request.headers["authorization"] == "Bearer tok"
        assert json.loads(request.content) == {
            "amount": 21,
            "currency": "sats",
            "description": "coffee",
            "expiry_seconds": 3600,
        }
        assert response.payment_hash == PAYMENT_HASH
        assert response.payment_request == "lnbc210n1..."
        assert response.external_id == "inv_1"

    @pytest.mark.asyncio
    async def test_add_invoice_envelope_error(self, bridge):
        """Test that an error status inside a 200 raises ProviderError."""

        def handler(request):
            return httpx.Response(200, json={"status": 400, "message": "amount too small"})

        node = BitvoraNode(
            "tok", SECRET, WEBHOOK_PATH, bridge, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(ProviderError, match="amount too small"):
            await node.add_invoice(AddInvoiceRequest(amount_msat=1))

    @pytest.mark.asyncio
    async def test_add_invoice_explicit_zero_expiry(self, bridge):
        """Test that expire=0 is sent as given, not replaced by the default."""
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": 200,
                    "data": {"id": "inv_1", "r_hash": PAYMENT_HASH, "payment_request": "lnbc1..."},
                },
            )

        node = BitvoraNode(
            "tok", SECRET, WEBHOOK_PATH, bridge, transport=httpx.MockTransport(handler)
        )
        await node.add_invoice(AddInvoiceRequest(amount_msat=1000, expire=0))

        assert json.loads(seen[0].content)["expiry_seconds"] == 0

    @pytest.mark.asyncio
    async def test_cancel_unsupported(self, node):
        """Test that cancel is not offered."""
        with pytest.raises(UnsupportedOperationError):
            await node.cancel_invoice(b"\x00" * 32)

    @pytest.mark.asyncio
    async def test_pay_unsupported(self, node):
        """Test that pay is not offered."""
        with pytest.raises(UnsupportedOperationError):
            await node.pay_invoice(PayInvoiceRequest(invoice="lnbc1..."))
