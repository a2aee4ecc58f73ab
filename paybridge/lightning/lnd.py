"""LND (Lightning Network Daemon) integration.

The node talks to LND through an ``LndRpc`` adapter, normally a thin wrapper
over the gRPC stubs. Keeping the transport behind a protocol means the
mapping logic here can be exercised without a running node.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import structlog

from paybridge.errors import ProviderError
from paybridge.lightning.models import (
    AddInvoiceRequest,
    AddInvoiceResponse,
    InvoiceCanceled,
    InvoiceCreated,
    InvoiceError,
    InvoiceSettled,
    InvoiceStream,
    InvoiceUnknown,
    InvoiceUpdate,
    PayInvoiceRequest,
    PayInvoiceResponse,
)
from paybridge.lightning.node import LightningNode

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRY_SECONDS = 3600
DEFAULT_PAYMENT_TIMEOUT_SECONDS = 60


class InvoiceState(int, Enum):
    """lnrpc.Invoice.InvoiceState."""

    OPEN = 0
    SETTLED = 1
    CANCELED = 2
    ACCEPTED = 3


class PaymentStatus(int, Enum):
    """lnrpc.Payment.PaymentStatus."""

    UNKNOWN = 0
    IN_FLIGHT = 1
    SUCCEEDED = 2
    FAILED = 3
    INITIATED = 4


@dataclass
class LndInvoice:
    """The fields of ``lnrpc.Invoice`` this module reads."""

    r_hash: bytes
    state: int
    payment_request: str = ""
    r_preimage: bytes = b""
    settle_index: int = 0


@dataclass
class LndPayment:
    """The fields of ``lnrpc.Payment`` this module reads."""

    status: int
    payment_hash: bytes = b""
    payment_preimage: bytes = b""
    value_msat: int = 0
    fee_msat: int = 0
    failure_reason: str = ""


@dataclass
class LndAddInvoiceResult:
    """The fields of ``lnrpc.AddInvoiceResponse`` this module reads."""

    payment_request: str
    r_hash: bytes = b""
    add_index: int = 0


class LndRpc(Protocol):
    """Calls made against an LND node.

    Returned objects only need the attributes of the matching dataclass in
    this module, so generated gRPC messages can be passed through as-is.
    """

    async def add_invoice(
        self, value_msat: int, memo: str, expiry: int
    ) -> LndAddInvoiceResult: ...

    async def cancel_invoice(self, payment_hash: bytes) -> None: ...

    async def lookup_invoice(self, payment_hash: bytes) -> LndInvoice: ...

    async def subscribe_invoices(
        self, add_index: int, settle_index: int
    ) -> AsyncIterator[LndInvoice]: ...

    async def send_payment(
        self, payment_request: str, timeout_seconds: int
    ) -> AsyncIterator[LndPayment]: ...


def map_invoice(invoice: LndInvoice) -> InvoiceUpdate:
    """Map one LND invoice record to a normalized update."""
    payment_hash = invoice.r_hash.hex()
    if invoice.state == InvoiceState.OPEN:
        return InvoiceCreated(payment_hash=payment_hash, payment_request=invoice.payment_request)
    if invoice.state == InvoiceState.SETTLED:
        return InvoiceSettled(payment_hash=payment_hash, preimage=invoice.r_preimage.hex())
    if invoice.state == InvoiceState.CANCELED:
        return InvoiceCanceled(payment_hash=payment_hash)
    return InvoiceUnknown(payment_hash=payment_hash)


async def _close_rpc_stream(stream: Any) -> None:
    """Release a server stream: async generators are closed, gRPC calls canceled."""
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
        return
    cancel = getattr(stream, "cancel", None)
    if cancel is not None:
        cancel()


class LndNode(LightningNode):
    """Lightning node backed by a self-hosted LND instance.

    Example:
        node = LndNode(GrpcLndRpc(channel, macaroon))
        updates = await node.subscribe_invoices(from_payment_hash=last_hash)
        async for update in updates:
            ...
    """

    def __init__(self, rpc: LndRpc) -> None:
        self.rpc = rpc
        self._logger = logger.bind(component="lnd_node")

    async def add_invoice(self, request: AddInvoiceRequest) -> AddInvoiceResponse:
        result = await self.rpc.add_invoice(
            value_msat=request.amount_msat,
            memo=request.memo or "",
            expiry=request.expire if request.expire is not None else DEFAULT_EXPIRY_SECONDS,
        )
        response = AddInvoiceResponse.from_invoice(result.payment_request)
        self._logger.info("invoice_created", payment_hash=response.payment_hash)
        return response

    async def cancel_invoice(self, payment_hash: bytes) -> None:
        await self.rpc.cancel_invoice(payment_hash)
        self._logger.info("invoice_canceled", payment_hash=payment_hash.hex())

    async def pay_invoice(self, request: PayInvoiceRequest) -> PayInvoiceResponse:
        """Pay an invoice and wait for the final payment state.

        Raises:
            ProviderError: If LND sends no update or the payment did not
                succeed.
        """
        updates = await self.rpc.send_payment(
            payment_request=request.invoice,
            timeout_seconds=request.timeout_seconds or DEFAULT_PAYMENT_TIMEOUT_SECONDS,
        )

        # LND streams intermediate states; only the last one is final
        payment: LndPayment | None = None
        async for update in updates:
            payment = update

        if payment is None:
            raise ProviderError("No payment result received")

        if payment.status != PaymentStatus.SUCCEEDED:
            reason = payment.failure_reason or "Unknown failure"
            self._logger.warning("payment_failed", status=payment.status, reason=reason)
            raise ProviderError(f"Payment failed: {reason}", details={"status": payment.status})

        return PayInvoiceResponse(
            payment_hash=payment.payment_hash.hex(),
            payment_preimage=payment.payment_preimage.hex(),
            amount_msat=payment.value_msat,
            fee_msat=payment.fee_msat,
        )

    async def subscribe_invoices(
        self, from_payment_hash: bytes | None = None
    ) -> InvoiceStream:
        """Subscribe to invoice state changes.

        With ``from_payment_hash`` the stream resumes after that invoice's
        settle index. If the lookup fails the stream starts from index 0.
        Closing the returned stream closes the RPC stream.
        """
        settle_index = 0
        if from_payment_hash is not None:
            try:
                invoice = await self.rpc.lookup_invoice(from_payment_hash)
                settle_index = invoice.settle_index
            except Exception as e:
                self._logger.warning(
                    "invoice_lookup_failed",
                    payment_hash=from_payment_hash.hex(),
                    error=str(e),
                )

        stream = await self.rpc.subscribe_invoices(add_index=0, settle_index=settle_index)
        self._logger.info("invoice_subscription_started", settle_index=settle_index)
        return InvoiceStream(self._updates(stream), lambda: _close_rpc_stream(stream))

    async def _updates(self, stream: AsyncIterator[LndInvoice]) -> AsyncIterator[InvoiceUpdate]:
        try:
            try:
                async for invoice in stream:
                    try:
                        update = map_invoice(invoice)
                    except (AttributeError, TypeError, ValueError) as e:
                        self._logger.warning("invoice_update_malformed", error=str(e))
                        update = InvoiceError(f"Malformed invoice update: {e}")
                    yield update
            except Exception as e:
                self._logger.error("invoice_stream_failed", error=str(e))
                yield InvoiceError(str(e))
                return

            self._logger.warning("invoice_stream_ended")
            yield InvoiceError("Invoice stream ended")
        finally:
            await _close_rpc_stream(stream)
