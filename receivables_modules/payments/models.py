"""
Payments Domain Models (``receivables_modules.payments.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of customer payments:
invoices as the ledger sees them, customer accounts, receipts, derived
customer balances and the tax information shown on a receipt.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O. Produced by the
storage collaborators and ``BalanceLedger``, returned to callers by
``PaymentService``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields are ``Money`` -- NEVER ``float``.
* ``Invoice``: ``0 <= amount_paid <= total_amount``, both in whole minor units.
* ``Receipt``: ``sum(items) + balance_credited == total_amount + balance_issued``.

Failure modes
-------------
* Construction with amounts that break the invariants above raises
  ``InvalidAmountError`` or ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from receivables_engines.allocation import (
    OutstandingInvoice,
    ReceiptItem,
    require_currency_precision,
)
from receivables_engines.balance import BalanceExplanation
from receivables_kernel.domain.status import (
    BalanceType,
    InvoiceStatus,
    PaymentMethodType,
    ReceiptStatus,
)
from receivables_kernel.domain.values import Currency, Money
from receivables_kernel.exceptions import InvalidAmountError


@dataclass(frozen=True)
class Invoice:
    """
    A customer invoice, limited to the fields payments touch.

    ``version`` is the optimistic-lock counter the storage collaborator
    checks on every update.
    """

    id: UUID
    customer_id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date
    total_amount: Money
    amount_paid: Money
    status: InvoiceStatus = InvoiceStatus.SENT
    version: int = 0

    def __post_init__(self) -> None:
        if self.total_amount.is_negative:
            raise InvalidAmountError(
                "total_amount", str(self.total_amount.amount), reason="cannot be negative"
            )
        if self.amount_paid.is_negative:
            raise InvalidAmountError(
                "amount_paid", str(self.amount_paid.amount), reason="cannot be negative"
            )
        if self.amount_paid > self.total_amount:
            raise InvalidAmountError(
                "amount_paid",
                str(self.amount_paid.amount),
                reason=f"cannot exceed total_amount {self.total_amount.amount}",
            )
        require_currency_precision("total_amount", self.total_amount)
        require_currency_precision("amount_paid", self.amount_paid)

    @property
    def currency(self) -> Currency:
        return self.total_amount.currency

    @property
    def outstanding_balance(self) -> Money:
        return self.total_amount - self.amount_paid

    def is_overdue(self, today: date) -> bool:
        """True if money is still owed after the due date."""
        return (
            self.status.is_payable
            and self.outstanding_balance.is_positive
            and self.due_date < today
        )

    def to_outstanding(self, today: date) -> OutstandingInvoice:
        """Snapshot handed to the allocation engine."""
        return OutstandingInvoice(
            invoice_id=self.id,
            outstanding_balance=self.outstanding_balance,
            due_date=self.due_date,
            invoice_date=self.invoice_date,
            invoice_number=self.invoice_number,
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            status=self.status,
            is_overdue=self.is_overdue(today),
        )


@dataclass(frozen=True)
class CustomerAccount:
    """Credit held for a customer, plus the account's optimistic version."""

    customer_id: UUID
    credit_on_account: Money
    version: int = 0

    def __post_init__(self) -> None:
        if self.credit_on_account.is_negative:
            raise InvalidAmountError(
                "credit_on_account",
                str(self.credit_on_account.amount),
                reason="cannot be negative",
            )


@dataclass(frozen=True)
class Receipt:
    """
    A recorded customer payment.

    Immutable after creation; the only permitted change is reversal,
    which flips ``status`` to REVERSED.
    """

    id: UUID
    receipt_number: str
    customer_id: UUID
    total_amount: Money
    items: tuple[ReceiptItem, ...]
    balance_issued: Money
    balance_credited: Money
    payment_date: date
    payment_method_id: str | None = None
    payment_method_type: PaymentMethodType | None = None
    reference_number: str | None = None
    notes: str | None = None
    status: ReceiptStatus = ReceiptStatus.ACTIVE

    def __post_init__(self) -> None:
        applied = self.total_applied
        if applied + self.balance_credited != self.total_amount + self.balance_issued:
            raise ValueError(
                f"Receipt {self.receipt_number} does not balance: items {applied} + "
                f"credited {self.balance_credited} != received {self.total_amount} + "
                f"issued {self.balance_issued}"
            )

    @property
    def total_applied(self) -> Money:
        """Sum of amounts applied to invoices."""
        return Money.total((item.amount_paid for item in self.items), self.total_amount.currency)

    @property
    def is_reversed(self) -> bool:
        return self.status == ReceiptStatus.REVERSED


@dataclass(frozen=True)
class CustomerBalance:
    """Derived net position of a customer. Never stored."""

    customer_id: UUID
    total_outstanding: Money
    credit_on_account: Money
    current_balance: Money
    balance_type: BalanceType
    open_invoice_count: int = 0
    overdue_invoice_count: int = 0

    @property
    def display_balance(self) -> Money:
        return abs(self.current_balance)


@dataclass(frozen=True)
class TaxInformation:
    """Informational tax figures printed on a receipt."""

    tax_rate: Decimal
    total_before_tax: Money
    tax_amount: Money
    total_amount_paid_to_invoices: Money
    total_amount_received: Money
    balance_issued: Money
    balance_credited: Money


@dataclass(frozen=True)
class ReceiptWithDetails:
    """A receipt together with its tax information and balance explanation."""

    receipt: Receipt
    tax_information: TaxInformation
    balance_explanation: BalanceExplanation | None = None


__all__ = [
    "CustomerAccount",
    "CustomerBalance",
    "Invoice",
    "OutstandingInvoice",
    "Receipt",
    "ReceiptItem",
    "ReceiptWithDetails",
    "TaxInformation",
    "BalanceExplanation",
]
