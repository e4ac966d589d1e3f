"""
Property-based tests for allocation, ledger reversal and tax totals.

Properties checked on generated inputs:
- Allocation conservation: items + unallocated == payment, exactly
- Per-invoice cap: no item exceeds the invoice's outstanding balance
- Oldest-due-first: an invoice is only funded once all earlier ones are settled
- Exact reversal: reverse(apply_payment(p)) restores paid amounts and credit
- Totals: every returned amount is already rounded and rounding is idempotent
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from receivables_engines.allocation import AllocationEngine, OutstandingInvoice
from receivables_engines.tax import TaxCalculator
from receivables_kernel.domain.clock import DeterministicClock
from receivables_kernel.domain.values import Money
from receivables_modules.payments.config import PaymentsConfig
from receivables_modules.payments.models import Invoice
from receivables_modules.payments.service import PaymentService
from receivables_modules.payments.store import InMemoryLedgerStore

BASE_DATE = date(2024, 1, 1)

cents = st.integers(min_value=1, max_value=10_000_000)
percentages = st.decimals(min_value=0, max_value=100, places=2, allow_nan=False, allow_infinity=False)


def usd_cents(value: int) -> Money:
    return Money.from_minor_units(value, "USD")


@composite
def outstanding_invoices(draw, max_size: int = 8):
    """Lists of outstanding invoices with random balances and due dates."""
    count = draw(st.integers(min_value=0, max_value=max_size))
    return [
        OutstandingInvoice(
            invoice_id=f"inv-{i}",
            outstanding_balance=usd_cents(draw(st.integers(min_value=0, max_value=1_000_000))),
            due_date=BASE_DATE + timedelta(days=draw(st.integers(min_value=-60, max_value=60))),
        )
        for i in range(count)
    ]


class TestAllocationProperties:
    """Invariants of automatic allocation."""

    @given(payment=cents, targets=outstanding_invoices())
    @settings(max_examples=200, deadline=None)
    def test_conservation_and_cap(self, payment, targets):
        plan = AllocationEngine().allocate(usd_cents(payment), targets)

        assert plan.total_allocated + plan.unallocated == usd_cents(payment)
        assert not plan.unallocated.is_negative
        for item in plan.items:
            assert item.amount_paid.is_positive
            assert item.amount_paid <= item.previous_balance

    @given(payment=cents, targets=outstanding_invoices())
    @settings(max_examples=200, deadline=None)
    def test_oldest_due_settled_first(self, payment, targets):
        """Every funded invoice except the last is fully settled."""
        plan = AllocationEngine().allocate(usd_cents(payment), targets)

        for item in plan.items[:-1]:
            assert item.settles_invoice
        due_dates = [
            next(t.due_date for t in targets if t.invoice_id == item.invoice_id)
            for item in plan.items
        ]
        assert due_dates == sorted(due_dates)
        if not plan.unallocated.is_zero:
            assert all(item.settles_invoice for item in plan.items)


class TestReversalProperties:
    """reverse() is the exact inverse of apply_payment()."""

    @given(
        balances=st.lists(st.integers(min_value=1, max_value=500_000), min_size=0, max_size=5),
        payment=cents,
    )
    @settings(max_examples=100, deadline=None)
    def test_reverse_restores_state(self, balances, payment):
        store = InMemoryLedgerStore()
        clock = DeterministicClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        service = PaymentService(store, clock=clock, config=PaymentsConfig(currency="USD"))
        customer_id = uuid4()
        for i, balance in enumerate(balances):
            store.add_invoice(Invoice(
                id=uuid4(),
                customer_id=customer_id,
                invoice_number=f"INV-{i}",
                invoice_date=BASE_DATE,
                due_date=BASE_DATE + timedelta(days=30 + i),
                total_amount=usd_cents(balance),
                amount_paid=Money.zero("USD"),
            ))
        before = {i.id: (i.amount_paid, i.status) for i in store.customer_invoices(customer_id)}

        details = service.process_payment(customer_id, usd_cents(payment))
        service.delete_receipt(details.receipt.id)

        after = {i.id: (i.amount_paid, i.status) for i in store.customer_invoices(customer_id)}
        assert after == before
        assert store.get_account(customer_id, "USD").credit_on_account.is_zero


class TestTaxProperties:
    """compute_totals rounding."""

    @given(subtotal=cents, rate=percentages, discount=percentages)
    @settings(max_examples=200, deadline=None)
    def test_totals_rounded_and_reconciled(self, subtotal, rate, discount):
        totals = TaxCalculator().compute_totals(usd_cents(subtotal), rate, discount)

        for amount in (totals.discount, totals.taxable_amount, totals.tax, totals.total):
            assert amount.round() == amount
            assert not amount.is_negative
        drift = abs(totals.taxable_amount + totals.tax - totals.total)
        assert drift <= Money.of("0.01", "USD")
        assert abs(totals.subtotal - totals.discount - totals.taxable_amount) <= Money.of("0.01", "USD")

    @given(subtotal=cents, rate=percentages)
    @settings(max_examples=100, deadline=None)
    def test_totals_deterministic(self, subtotal, rate):
        calc = TaxCalculator()
        assert calc.compute_totals(usd_cents(subtotal), rate) == calc.compute_totals(usd_cents(subtotal), rate)
