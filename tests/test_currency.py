"""Tests for ISO 4217 validation and minor-unit conversion."""

from decimal import Decimal

import pytest

from adyen_provider.currency import (
    amount_from_minor_units,
    amount_to_minor_units,
    is_valid_currency_code,
    minor_unit_digits,
    normalize_currency_code,
)


class TestCurrencyCodes:
    """Tests for currency code validation."""

    def test_normalizes_case_and_whitespace(self):
        assert normalize_currency_code(" usd ") == "USD"

    @pytest.mark.parametrize("code", ["", "US", "XYZ", "DOLLAR", None])
    def test_rejects_unknown_codes(self, code):
        with pytest.raises(ValueError, match="ISO 4217"):
            normalize_currency_code(code)

    def test_is_valid_currency_code(self):
        assert is_valid_currency_code("eur")
        assert not is_valid_currency_code("ABC")

    def test_minor_unit_digits(self):
        assert minor_unit_digits("USD") == 2
        assert minor_unit_digits("JPY") == 0
        assert minor_unit_digits("KWD") == 3


class TestMinorUnits:
    """Tests for converting between major and minor units."""

    def test_usd_to_minor_units(self):
        assert amount_to_minor_units(Decimal("19.99"), "USD") == 1999

    def test_usd_from_minor_units(self):
        assert amount_from_minor_units(1999, "USD") == Decimal("19.99")

    def test_jpy_has_no_minor_units(self):
        assert amount_to_minor_units(Decimal("1000"), "JPY") == 1000
        assert amount_from_minor_units(1000, "JPY") == Decimal("1000")

    def test_three_decimal_currency(self):
        assert amount_to_minor_units(Decimal("1.234"), "BHD") == 1234

    def test_trailing_zeros_are_fine(self):
        assert amount_to_minor_units(Decimal("10.5000"), "EUR") == 1050

    @pytest.mark.parametrize("amount,currency", [("19.999", "USD"), ("10.005", "EUR"), ("1.5", "JPY")])
    def test_rejects_amounts_finer_than_minor_unit(self, amount, currency):
        with pytest.raises(ValueError, match="decimal place"):
            amount_to_minor_units(Decimal(amount), currency)

    def test_accepts_strings_and_ints(self):
        assert amount_to_minor_units("5.10", "GBP") == 510
        assert amount_to_minor_units(7, "USD") == 700

    def test_unknown_currency_raises(self):
        with pytest.raises(ValueError):
            amount_to_minor_units(Decimal("1.00"), "XXX")
