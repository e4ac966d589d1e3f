"""
Tax Engine - Tax, discount and document total breakdowns.

Percentages are given as numbers between 0 and 100 (16 means 16%).
Intermediate values are kept at full Decimal precision; every returned
amount is rounded ROUND_HALF_UP to the currency's decimal places as the
final step only.

Usage:
    from receivables_engines.tax import TaxCalculator
    from receivables_kernel.domain.values import Money
    from decimal import Decimal

    calculator = TaxCalculator()
    totals = calculator.compute_totals(
        subtotal=Money.of("1000.00", "KES"),
        tax_rate=Decimal("16"),
        discount_percentage=Decimal("10"),
    )
    print(totals.discount)  # Money: 100.00 KES
    print(totals.tax)  # Money: 144.00 KES
    print(totals.total)  # Money: 1044.00 KES
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import InvalidAmountError, PercentageOutOfRangeError
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxBreakdown:
    """
    Tax on a single amount.

    Immutable value object; ``taxable_amount + tax`` reconciles to ``total``
    within one minor unit.
    """

    taxable_amount: Money
    tax: Money
    total: Money


@dataclass(frozen=True)
class DocumentTotals:
    """
    Totals for an invoice or quotation.

    Immutable value object with the discount applied before tax.
    """

    subtotal: Money
    discount: Money
    taxable_amount: Money
    tax: Money
    total: Money


class TaxCalculator:
    """
    Calculate tax, discounts and totals.

    Pure functions - no I/O, no database access.
    Rates are provided as parameters.
    """

    def compute_tax(self, amount: Money, tax_rate: Decimal | int | str) -> TaxBreakdown:
        """
        Tax added on top of ``amount`` (tax-exclusive).

        Raises:
            InvalidAmountError: If ``amount`` is negative.
            PercentageOutOfRangeError: If ``tax_rate`` is outside [0, 100].
        """
        _require_non_negative("amount", amount)
        rate = _percentage("tax_rate", tax_rate)

        tax = amount * rate / _HUNDRED
        return TaxBreakdown(
            taxable_amount=amount.round(),
            tax=tax.round(),
            total=(amount + tax).round(),
        )

    def compute_discount(
        self,
        amount: Money,
        discount_percentage: Decimal | int | str,
    ) -> Money:
        """Discount on ``amount``, rounded to the currency's precision."""
        _require_non_negative("amount", amount)
        percentage = _percentage("discount_percentage", discount_percentage)
        return (amount * percentage / _HUNDRED).round()

    @traced_engine(
        "tax", "1.0",
        fingerprint_fields=("subtotal", "tax_rate", "discount_percentage"),
    )
    def compute_totals(
        self,
        subtotal: Money,
        tax_rate: Decimal | int | str,
        discount_percentage: Decimal | int | str = Decimal("0"),
    ) -> DocumentTotals:
        """
        Discount, taxable amount, tax and total for a document subtotal.

        discount = subtotal * discount% / 100
        taxable  = subtotal - discount
        tax      = taxable * rate / 100
        total    = taxable + tax

        Args:
            subtotal: Sum of line totals; must not be negative.
            tax_rate: Tax percentage in [0, 100].
            discount_percentage: Discount percentage in [0, 100].

        Returns:
            DocumentTotals with every amount rounded once, at the end.
        """
        logger.info("totals_calculation_started", extra={
            "subtotal": str(subtotal.amount),
            "currency": subtotal.currency.code,
            "tax_rate": str(tax_rate),
            "discount_percentage": str(discount_percentage),
        })

        _require_non_negative("subtotal", subtotal)
        rate = _percentage("tax_rate", tax_rate)
        percentage = _percentage("discount_percentage", discount_percentage)

        discount = subtotal * percentage / _HUNDRED
        taxable = subtotal - discount
        tax = taxable * rate / _HUNDRED
        total = taxable + tax

        result = DocumentTotals(
            subtotal=subtotal.round(),
            discount=discount.round(),
            taxable_amount=taxable.round(),
            tax=tax.round(),
            total=total.round(),
        )

        logger.info("totals_calculation_completed", extra={
            "discount": str(result.discount.amount),
            "taxable_amount": str(result.taxable_amount.amount),
            "tax": str(result.tax.amount),
            "total": str(result.total.amount),
        })
        return result

    def extract_tax(self, gross: Money, tax_rate: Decimal | int | str) -> TaxBreakdown:
        """
        Split a tax-inclusive amount into its taxable part and tax.

        taxable = gross * 100 / (100 + rate). The tax is the rounded gross
        minus the rounded taxable amount, so the parts always sum to total.
        """
        _require_non_negative("gross", gross)
        rate = _percentage("tax_rate", tax_rate)

        total = gross.round()
        taxable = (gross * _HUNDRED / (_HUNDRED + rate)).round()
        return TaxBreakdown(
            taxable_amount=taxable,
            tax=total - taxable,
            total=total,
        )

    def line_total(
        self,
        quantity: Decimal | int | str,
        unit_price: Money,
        discount_percentage: Decimal | int | str = Decimal("0"),
    ) -> Money:
        """Line amount: quantity x unit price, less the line discount."""
        qty = _decimal("quantity", quantity)
        if qty < 0:
            raise InvalidAmountError("quantity", str(qty), reason="cannot be negative")
        _require_non_negative("unit_price", unit_price)
        percentage = _percentage("discount_percentage", discount_percentage)

        gross = unit_price * qty
        return (gross - gross * percentage / _HUNDRED).round()


def _decimal(field: str, value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError(f"{field} must not be a float, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidAmountError(field, str(value), reason="must be a number") from e
    if not result.is_finite():
        raise InvalidAmountError(field, str(value), reason="must be a number")
    return result


def _percentage(field: str, value: Decimal | int | str) -> Decimal:
    result = _decimal(field, value)
    if result < 0 or result > _HUNDRED:
        logger.warning("percentage_out_of_range", extra={"field": field, "value": str(result)})
        raise PercentageOutOfRangeError(field, str(result))
    return result


def _require_non_negative(field: str, amount: Money) -> None:
    if amount.is_negative:
        raise InvalidAmountError(field, str(amount.amount), reason="cannot be negative")
