"""Pure domain layer: money, currencies, status vocabulary and clocks."""

from receivables_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from receivables_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from receivables_kernel.domain.status import (
    BalanceType,
    InvoiceStatus,
    PaymentMethodType,
    ReceiptStatus,
)
from receivables_kernel.domain.values import Currency, Money

__all__ = [
    "BalanceType",
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "InvoiceStatus",
    "Money",
    "PaymentMethodType",
    "ReceiptStatus",
    "SystemClock",
]
