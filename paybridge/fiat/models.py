"""Provider-independent fiat payment models.

Amounts are integers in the currency's smallest unit (cents for USD/EUR,
yen for JPY).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Currency(str, Enum):
    """Currencies accepted across providers."""

    EUR = "EUR"
    BTC = "BTC"
    USD = "USD"
    GBP = "GBP"
    CAD = "CAD"
    CHF = "CHF"
    AUD = "AUD"
    JPY = "JPY"


def fiat_currency(currency: str | Currency) -> Currency:
    """Normalize a currency code and reject bitcoin.

    Raises:
        ValueError: For unknown codes or ``BTC``.
    """
    try:
        parsed = Currency(currency.upper() if isinstance(currency, str) else currency)
    except ValueError as e:
        raise ValueError(f"unknown currency: {currency}") from e
    if parsed == Currency.BTC:
        raise ValueError("Bitcoin amount not allowed for fiat payments")
    return parsed


class LineItem(BaseModel):
    """A single line item in a payment order.

    Attributes:
        name: Name of the item.
        description: Optional description.
        unit_amount: Unit price in the smallest currency unit.
        quantity: Number of units.
        currency: Currency code, e.g. "USD".
        images: Optional image URLs.
        metadata: Optional provider metadata.
        tax_amount: Total tax for this line, in the smallest currency unit.
        tax_name: Display name of the tax, e.g. "VAT".
    """

    name: str
    description: str | None = None
    unit_amount: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    currency: str
    images: list[str] | None = None
    metadata: dict[str, Any] | None = None
    tax_amount: int | None = Field(default=None, ge=0)
    tax_name: str | None = None

    def subtotal_amount(self) -> int:
        """Unit amount times quantity, before tax."""
        return self.unit_amount * self.quantity

    def total_amount(self) -> int:
        """Subtotal plus tax."""
        return self.subtotal_amount() + (self.tax_amount or 0)


class FiatPaymentInfo(BaseModel):
    """Result of creating an order with a fiat provider.

    Attributes:
        external_id: Provider's identifier for the order.
        raw_data: Provider response as JSON text.
    """

    external_id: str
    raw_data: str


class FiatPaymentService(ABC):
    """A fiat payment processor.

    Implement this class to add support for additional processors.
    """

    @abstractmethod
    async def create_order(
        self,
        description: str,
        amount: int,
        currency: str | Currency,
        line_items: list[LineItem] | None = None,
    ) -> FiatPaymentInfo:
        """Create a payment order.

        Args:
            description: Order description shown to the payer.
            amount: Amount in the smallest currency unit.
            currency: Currency code; ``BTC`` is rejected.
            line_items: Optional itemized breakdown.

        Raises:
            ValueError: If the currency is not a supported fiat currency.
        """

    @abstractmethod
    async def cancel_order(self, order_id: str) -> None:
        """Cancel a pending order."""
