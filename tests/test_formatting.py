# tests for currency display helpers

import pytest
from decimal import Decimal

from clinicdesk.services.formatting import format_currency, format_signed


class TestFormatCurrency:
    """indian grouping, half-up rounding"""

    @pytest.mark.parametrize("amount, expected", [
        ("0", "₹0.00"),
        ("5", "₹5.00"),
        ("999.5", "₹999.50"),
        ("1000", "₹1,000.00"),
        ("123456", "₹1,23,456.00"),
        ("1234567.891", "₹12,34,567.89"),
        ("100000000", "₹10,00,00,000.00"),
        ("0.005", "₹0.01"),
        ("-1500.25", "-₹1,500.25"),
    ])
    def test_two_places(self, amount, expected):
        assert format_currency(Decimal(amount)) == expected

    @pytest.mark.parametrize("amount, expected", [
        ("1850", "₹1,850"),
        ("1849.5", "₹1,850"),
        ("250000.49", "₹2,50,000"),
    ])
    def test_whole_units(self, amount, expected):
        assert format_currency(Decimal(amount), places=0) == expected

    def test_custom_symbol(self):
        assert format_currency(Decimal("12.5"), symbol="Rs ") == "Rs 12.50"


class TestFormatSigned:
    def test_credit(self):
        assert format_signed(Decimal("300")) == "+₹300.00"

    def test_debit(self):
        assert format_signed(Decimal("-150")) == "-₹150.00"

    def test_zero_has_no_sign(self):
        assert format_signed(Decimal("0")) == "₹0.00"
