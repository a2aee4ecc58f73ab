"""Lightning invoice request/response types and normalized invoice updates."""

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import bolt11

from paybridge.errors import InvoiceParseError


def payment_hash_of(payment_request: str) -> str:
    """Decode a BOLT11 payment request and return its payment hash (hex).

    Raises:
        InvoiceParseError: If the payment request cannot be decoded.
    """
    try:
        invoice = bolt11.decode(payment_request)
    except Exception as e:
        raise InvoiceParseError(f"Failed to parse invoice: {e}") from e
    return invoice.payment_hash


@dataclass
class AddInvoiceRequest:
    """Request to create a new Lightning invoice.

    Attributes:
        amount_msat: Amount in milli-satoshis.
        memo: Optional description.
        expire: Expiry in seconds (providers default to 3600).
    """

    amount_msat: int
    memo: str | None = None
    expire: int | None = None


@dataclass
class AddInvoiceResponse:
    """A created invoice."""

    payment_request: str
    payment_hash: str
    external_id: str | None = None

    @classmethod
    def from_invoice(
        cls, payment_request: str, external_id: str | None = None
    ) -> "AddInvoiceResponse":
        """Build a response by decoding the payment hash from the invoice."""
        return cls(
            payment_request=payment_request,
            payment_hash=payment_hash_of(payment_request),
            external_id=external_id,
        )


@dataclass
class PayInvoiceRequest:
    """Request to pay a BOLT11 invoice."""

    invoice: str
    timeout_seconds: int | None = None


@dataclass
class PayInvoiceResponse:
    """Result of a successful payment."""

    payment_hash: str
    payment_preimage: str | None
    amount_msat: int
    fee_msat: int


# ============================================================================
# Normalized invoice updates
# ============================================================================


@dataclass(frozen=True)
class InvoiceCreated:
    """Invoice was created."""

    payment_hash: str
    payment_request: str


@dataclass(frozen=True)
class InvoiceSettled:
    """Invoice was paid."""

    payment_hash: str
    preimage: str | None = None
    external_id: str | None = None


@dataclass(frozen=True)
class InvoiceCanceled:
    """Invoice was canceled."""

    payment_hash: str


@dataclass(frozen=True)
class InvoiceUnknown:
    """Provider reported a state with no normalized equivalent."""

    payment_hash: str


@dataclass(frozen=True)
class InvoiceError:
    """An item could not be processed, or the stream ended unexpectedly."""

    message: str


InvoiceUpdate = InvoiceCreated | InvoiceSettled | InvoiceCanceled | InvoiceUnknown | InvoiceError


class InvoiceStream:
    """Invoice updates tied to the upstream resource that feeds them.

    ``aclose()`` (or leaving ``async with``) stops the updates and releases
    the upstream subscription, whether or not iteration ever started.
    """

    def __init__(
        self,
        updates: AsyncIterator[InvoiceUpdate],
        on_close: Callable[[], Awaitable[None] | None],
    ) -> None:
        self._updates = updates
        self._on_close = on_close
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "InvoiceStream":
        return self

    async def __anext__(self) -> InvoiceUpdate:
        if self._closed:
            raise StopAsyncIteration
        return await self._updates.__anext__()

    async def aclose(self) -> None:
        """Stop the stream and release its upstream subscription."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._updates, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            result = self._on_close()
            if inspect.isawaitable(result):
                await result

    async def __aenter__(self) -> "InvoiceStream":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
