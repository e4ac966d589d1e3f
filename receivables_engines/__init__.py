"""
Pure calculation engines for the receivables ledger.

Engines take value objects in and return value objects out. They never
touch storage or the clock; the payments module supplies their inputs.
"""

from receivables_engines.allocation import (
    AllocationEngine,
    AllocationPlan,
    AllocationPolicy,
    ExplicitAllocation,
    OutstandingInvoice,
    ReceiptItem,
    order_targets,
)
from receivables_engines.balance import BalanceCalculator, BalanceExplanation
from receivables_engines.tax import DocumentTotals, TaxBreakdown, TaxCalculator
from receivables_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationEngine",
    "AllocationPlan",
    "AllocationPolicy",
    "BalanceCalculator",
    "BalanceExplanation",
    "DocumentTotals",
    "ExplicitAllocation",
    "OutstandingInvoice",
    "ReceiptItem",
    "TaxBreakdown",
    "TaxCalculator",
    "compute_input_fingerprint",
    "order_targets",
    "traced_engine",
]
