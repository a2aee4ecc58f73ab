"""Abstract Lightning node interface."""

from abc import ABC, abstractmethod

from paybridge.lightning.models import (
    AddInvoiceRequest,
    AddInvoiceResponse,
    InvoiceStream,
    PayInvoiceRequest,
    PayInvoiceResponse,
)


class LightningNode(ABC):
    """A Lightning Network back-end able to issue and track invoices.

    Implement this class to add support for additional providers.
    """

    @abstractmethod
    async def add_invoice(self, request: AddInvoiceRequest) -> AddInvoiceResponse:
        """Create a new invoice for receiving a payment."""

    @abstractmethod
    async def cancel_invoice(self, payment_hash: bytes) -> None:
        """Cancel an open invoice by payment hash."""

    @abstractmethod
    async def pay_invoice(self, request: PayInvoiceRequest) -> PayInvoiceResponse:
        """Pay a BOLT11 invoice."""

    @abstractmethod
    async def subscribe_invoices(
        self, from_payment_hash: bytes | None = None
    ) -> InvoiceStream:
        """Subscribe to invoice updates.

        The subscription is attached when this coroutine returns, so no
        update published afterwards is missed even if iteration starts
        later. The returned iterator yields ``InvoiceError`` for items it
        cannot process and keeps going; an unexpected end of the underlying
        stream yields one final ``InvoiceError``. ``aclose()`` on the returned
        stream releases the subscription even if it was never iterated.

        Args:
            from_payment_hash: Resume after this invoice where supported.
        """
