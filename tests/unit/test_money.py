"""
Unit tests for Money and decimal handling.

Verifies:
- Float constructor prohibition
- Currency-derived rounding (ROUND_HALF_UP)
- Same-currency arithmetic and comparison
- Minor-unit conversion used by the SQL column type
"""

import pytest
from decimal import Decimal

from receivables_kernel.db.types import MinorUnits, money_from_int, round_money, to_minor_units
from receivables_kernel.domain.values import Currency, Money


class TestMoneyConstruction:
    """Tests for Money construction and validation."""

    def test_of_from_string(self):
        """String amounts are converted to Decimal exactly."""
        m = Money.of("100.10", "USD")
        assert m.amount == Decimal("100.10")
        assert m.currency == Currency("USD")

    def test_float_rejected(self):
        """Floats never become money."""
        with pytest.raises(TypeError):
            Money(amount=0.1, currency=Currency("USD"))

    def test_non_finite_rejected(self):
        """NaN and infinity are not amounts."""
        with pytest.raises(ValueError):
            Money.of(Decimal("NaN"), "USD")

    def test_invalid_currency_rejected(self):
        """Unknown currency codes are refused."""
        with pytest.raises(ValueError):
            Money.of("1.00", "XXX")

    def test_currency_code_normalized(self):
        """Currency codes are upper-cased."""
        assert Money.of("1", "usd").currency.code == "USD"

    def test_negative_allowed(self):
        """Balances in credit are negative Money."""
        assert Money.of("-5.00", "USD").is_negative


class TestMoneyRounding:
    """Rounding uses the currency's decimal places and ROUND_HALF_UP."""

    def test_half_up_two_places(self):
        assert Money.of("2.345", "USD").round().amount == Decimal("2.35")

    def test_half_up_zero_places(self):
        assert Money.of("2.5", "JPY").round().amount == Decimal("3")

    def test_three_places(self):
        assert Money.of("1.2345", "BHD").round().amount == Decimal("1.235")

    def test_round_returns_new_instance(self):
        """Rounding never mutates the original."""
        m = Money.of("1.005", "USD")
        m.round()
        assert m.amount == Decimal("1.005")


class TestMoneyArithmetic:
    """Same-currency arithmetic and comparison."""

    def test_add_and_subtract(self):
        a = Money.of("100.00", "USD")
        b = Money.of("30.25", "USD")
        assert a + b == Money.of("130.25", "USD")
        assert a - b == Money.of("69.75", "USD")

    def test_mixed_currency_rejected(self):
        with pytest.raises(ValueError):
            Money.of("1", "USD") + Money.of("1", "EUR")

    def test_mixed_currency_comparison_rejected(self):
        with pytest.raises(ValueError):
            Money.of("1", "USD") < Money.of("1", "EUR")

    def test_scalar_multiply_and_divide(self):
        m = Money.of("100.00", "USD")
        assert m * Decimal("0.16") == Money.of("16.00", "USD")
        assert m / 4 == Money.of("25.00", "USD")

    def test_min_works_on_money(self):
        """The allocation engine relies on min() over Money."""
        small = Money.of("20.00", "USD")
        assert min(Money.of("50.00", "USD"), small) is small

    def test_total(self):
        amounts = [Money.of("1.10", "USD"), Money.of("2.20", "USD")]
        assert Money.total(amounts, "USD") == Money.of("3.30", "USD")
        assert Money.total([], "USD").is_zero

    def test_abs_and_neg(self):
        m = Money.of("-12.50", "USD")
        assert abs(m) == Money.of("12.50", "USD")
        assert -m == Money.of("12.50", "USD")


class TestMinorUnits:
    """Integer minor-unit conversions."""

    def test_to_and_from_minor_units(self):
        m = Money.of("10.50", "USD")
        assert m.to_minor_units() == 1050
        assert Money.from_minor_units(1050, "USD") == m

    def test_money_from_int(self):
        assert money_from_int(1050, 2) == Decimal("10.50")

    def test_round_money_half_up(self):
        assert round_money(Decimal("0.125"), 2) == Decimal("0.13")

    def test_to_minor_units_rejects_extra_precision(self):
        """Persisted amounts must already be rounded."""
        with pytest.raises(ValueError):
            to_minor_units(Decimal("1.001"), 2)

    def test_column_type_refuses_float(self):
        column = MinorUnits(3)
        with pytest.raises(TypeError):
            column.process_bind_param(1.5, None)

    def test_column_type_round_trip(self):
        column = MinorUnits(3)
        stored = column.process_bind_param(Decimal("12.34"), None)
        assert stored == 12340
        assert column.process_result_value(stored, None) == Decimal("12.34")
