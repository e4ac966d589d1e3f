"""
Payments Module.

Records customer payments against invoices, keeps credit on account and
explains balance changes. Allocation, balance and tax arithmetic come from
the shared engines.
"""

from receivables_modules.payments.config import PaymentsConfig
from receivables_modules.payments.ledger import BalanceLedger
from receivables_modules.payments.models import (
    BalanceExplanation,
    CustomerAccount,
    CustomerBalance,
    Invoice,
    OutstandingInvoice,
    Receipt,
    ReceiptItem,
    ReceiptWithDetails,
    TaxInformation,
)
from receivables_modules.payments.service import PaymentService
from receivables_modules.payments.store import InMemoryLedgerStore, LedgerMutation, LedgerStore

__all__ = [
    "BalanceExplanation",
    "BalanceLedger",
    "CustomerAccount",
    "CustomerBalance",
    "InMemoryLedgerStore",
    "Invoice",
    "LedgerMutation",
    "LedgerStore",
    "OutstandingInvoice",
    "PaymentService",
    "PaymentsConfig",
    "Receipt",
    "ReceiptItem",
    "ReceiptWithDetails",
    "TaxInformation",
]
