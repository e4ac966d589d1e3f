"""
Balance Engine - Pure balance arithmetic for a customer's receivables.

Derives invoice status from amounts and dates, computes a customer's net
position (debt vs. credit) and builds the BalanceExplanation returned for
every applied payment. No I/O; the ledger supplies all state.

Usage:
    from receivables_engines.balance import BalanceCalculator

    calc = BalanceCalculator()
    status = calc.derive_status(total, paid, due_date, today)
    explanation = calc.explain(previous_balance, payment_received,
                               invoice_payments, balance_credited)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.status import BalanceType, InvoiceStatus
from receivables_kernel.domain.values import Currency, Money
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.balance")


@dataclass(frozen=True)
class BalanceExplanation:
    """
    How one payment moved a customer's balance.

    Contract:
        ``new_balance == previous_balance - payment_received``.
        Positive balances are debt, negative ones are credit.
    Guarantees:
        - ``balance_type`` is derived from the sign of ``new_balance``.
        - ``invoice_payments + excess_credit == payment_received + credit_issued``.
    """

    previous_balance: Money
    payment_received: Money
    invoice_payments: Money
    excess_credit: Money
    new_balance: Money
    balance_type: BalanceType
    credit_issued: Money | None = None

    @property
    def display_balance(self) -> Money:
        """Absolute balance, shown next to the DEBT / CREDIT label."""
        return abs(self.new_balance)


class BalanceCalculator:
    """
    Pure balance rules shared by the ledger and the payment service.

    Pure functions - no I/O, no clock access (``today`` is a parameter).
    """

    def derive_status(
        self,
        total_amount: Money,
        amount_paid: Money,
        due_date: date,
        today: date,
        current_status: InvoiceStatus = InvoiceStatus.SENT,
    ) -> InvoiceStatus:
        """
        Status implied by an invoice's amounts.

        DRAFT and CANCELLED are set outside the ledger and are kept as-is.
        Otherwise PAID when fully paid, PARTIAL when something is paid,
        OVERDUE when nothing is paid and the due date has passed, else SENT.
        """
        if current_status in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
            return current_status
        if amount_paid == total_amount:
            return InvoiceStatus.PAID
        if amount_paid.is_positive:
            return InvoiceStatus.PARTIAL
        if due_date < today:
            return InvoiceStatus.OVERDUE
        return InvoiceStatus.SENT

    def classify(self, balance: Money) -> BalanceType:
        if balance.is_positive:
            return BalanceType.DEBT
        if balance.is_negative:
            return BalanceType.CREDIT
        return BalanceType.ZERO

    def customer_balance(
        self,
        outstanding: Iterable[Money],
        credit_on_account: Money,
    ) -> Money:
        """Sum of outstanding invoice balances minus credit on account."""
        currency: Currency = credit_on_account.currency
        return Money.total(outstanding, currency) - credit_on_account

    @traced_engine(
        "balance", "1.0",
        fingerprint_fields=("previous_balance", "payment_received", "invoice_payments"),
    )
    def explain(
        self,
        previous_balance: Money,
        payment_received: Money,
        invoice_payments: Money,
        excess_credit: Money,
        credit_issued: Money | None = None,
    ) -> BalanceExplanation:
        """
        Build the explanation for a payment.

        Args:
            previous_balance: Customer balance before the payment.
            payment_received: Money received from the customer.
            invoice_payments: Sum of the receipt items.
            excess_credit: Amount added to credit on account.
            credit_issued: Existing credit drawn to settle invoices.
        """
        issued = credit_issued if credit_issued is not None else Money.zero(payment_received.currency)

        # INVARIANT: what was paid out equals what came in
        assert invoice_payments + excess_credit == payment_received + issued, (
            f"Balance conservation violated: {invoice_payments} + {excess_credit} "
            f"!= {payment_received} + {issued}"
        )

        new_balance = previous_balance - payment_received
        explanation = BalanceExplanation(
            previous_balance=previous_balance,
            payment_received=payment_received,
            invoice_payments=invoice_payments,
            excess_credit=excess_credit,
            new_balance=new_balance,
            balance_type=self.classify(new_balance),
            credit_issued=issued,
        )

        logger.debug("balance_explained", extra={
            "previous_balance": str(previous_balance.amount),
            "payment_received": str(payment_received.amount),
            "new_balance": str(new_balance.amount),
            "balance_type": explanation.balance_type.value,
        })
        return explanation
