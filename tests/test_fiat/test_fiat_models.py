"""Tests for provider-independent fiat models."""

import pytest
from pydantic import ValidationError

from paybridge.fiat.models import Currency, LineItem, fiat_currency


class TestLineItem:
    """Tests for LineItem amounts."""

    def test_subtotal_and_total(self):
        """Test subtotal and total with tax."""
        item = LineItem(name="Widget", unit_amount=1500, quantity=2, currency="EUR", tax_amount=600)

        assert item.subtotal_amount() == 3000
        assert item.total_amount() == 3600

    def test_total_without_tax(self):
        """Test total equals subtotal with no tax."""
        item = LineItem(name="Widget", unit_amount=250, quantity=4, currency="USD")

        assert item.total_amount() == item.subtotal_amount() == 1000

    def test_negative_amount_rejected(self):
        """Test validation of unit amounts."""
        with pytest.raises(ValidationError):
            LineItem(name="Widget", unit_amount=-1, currency="USD")

    def test_zero_quantity_rejected(self):
        """Test validation of quantity."""
        with pytest.raises(ValidationError):
            LineItem(name="Widget", unit_amount=1, quantity=0, currency="USD")


class TestFiatCurrency:
    """Tests for currency normalization."""

    def test_lowercase_accepted(self):
        """Test case-insensitive parsing."""
        assert fiat_currency("eur") == Currency.EUR

    def test_enum_accepted(self):
        """Test passing an enum member."""
        assert fiat_currency(Currency.JPY) == Currency.JPY

    def test_bitcoin_rejected(self):
        """Test that BTC is not a fiat currency."""
        with pytest.raises(ValueError, match="Bitcoin amount not allowed"):
            fiat_currency("BTC")

    def test_unknown_rejected(self):
        """Test unknown codes."""
        with pytest.raises(ValueError, match="unknown currency"):
            fiat_currency("XYZ")
