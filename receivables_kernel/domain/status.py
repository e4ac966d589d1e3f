"""
Status -- Shared lifecycle vocabulary for invoices, receipts and balances.

Kept in the kernel so that the pure engines and the payments module speak
the same enums without the engines importing module code.
"""

from enum import Enum


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"

    @property
    def is_payable(self) -> bool:
        """Only issued, non-cancelled invoices may receive payments."""
        return self not in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)


class ReceiptStatus(str, Enum):
    """Receipt states. A receipt is never edited, only reversed."""

    ACTIVE = "ACTIVE"
    REVERSED = "REVERSED"


class BalanceType(str, Enum):
    """Classification of a customer's net position."""

    DEBT = "DEBT"  # Customer owes
    CREDIT = "CREDIT"  # Customer holds credit on account
    ZERO = "ZERO"


class PaymentMethodType(str, Enum):
    """How the money was received."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
