"""
Tests for BalanceLedger.

Verifies:
- apply_payment updates invoices, credit and receipt in one commit
- BalanceExplanation arithmetic for partial, exact and overpayments
- reverse() is the exact inverse of apply_payment
- Reversal, overpayment and version failures leave state untouched
- Plans built against since-changed invoices are rejected
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from receivables_engines.allocation import (
    AllocationEngine,
    AllocationPlan,
    ExplicitAllocation,
    ReceiptItem,
)
from receivables_kernel.domain.status import BalanceType, InvoiceStatus, ReceiptStatus
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import (
    InvalidAmountError,
    InvalidStateError,
    InvoiceNotPayableError,
    OverpaymentError,
    ReceiptAlreadyReversedError,
    ReceiptNotFoundError,
    StaleStateError,
    UnknownInvoiceError,
)
from receivables_modules.payments.ledger import BalanceLedger
from receivables_modules.payments.store import LedgerMutation


def usd(amount: str) -> Money:
    return Money.of(Decimal(amount), "USD")


class LedgerTestBase:
    """Shared wiring: in-memory store, fixed clock, USD settings."""

    @pytest.fixture(autouse=True)
    def _wire(self, store, deterministic_clock, usd_config, customer_id, make_invoice, test_actor_id):
        self.store = store
        self.customer_id = customer_id
        self.actor_id = test_actor_id
        self.make_invoice = make_invoice
        self.ledger = BalanceLedger(store, clock=deterministic_clock, config=usd_config)
        self.engine = AllocationEngine()

    def add_invoice(self, total: str, due: date, **kwargs):
        invoice = self.make_invoice(self.customer_id, total, due_date=due, **kwargs)
        self.store.add_invoice(invoice, self.actor_id)
        return invoice

    def plan(self, amount: str, explicit_items=None):
        targets = [
            invoice.to_outstanding(date(2024, 1, 1))
            for invoice in self.store.customer_invoices(self.customer_id)
            if invoice.status.is_payable and invoice.outstanding_balance.is_positive
        ]
        return self.engine.allocate(usd(amount), targets, explicit_items)

    def invoice(self, invoice_id):
        return self.store.get_invoices([invoice_id])[invoice_id]

    def credit(self):
        return self.store.get_account(self.customer_id, "USD").credit_on_account


class TestApplyPayment(LedgerTestBase):
    """Committing allocation plans."""

    def test_partial_payment_across_two_invoices(self):
        """120 against 100 + 50 leaves 30 owing on the later invoice."""
        jan = self.add_invoice("100.00", date(2024, 1, 31))
        feb = self.add_invoice("50.00", date(2024, 2, 29))

        explanation = self.ledger.apply_payment(self.customer_id, self.plan("120.00"))

        assert self.invoice(jan.id).amount_paid == usd("100.00")
        assert self.invoice(jan.id).status == InvoiceStatus.PAID
        assert self.invoice(feb.id).amount_paid == usd("20.00")
        assert self.invoice(feb.id).status == InvoiceStatus.PARTIAL
        assert explanation.previous_balance == usd("150.00")
        assert explanation.new_balance == usd("30.00")
        assert explanation.balance_type == BalanceType.DEBT
        assert self.credit() == usd("0.00")

    def test_overpayment_goes_to_credit(self):
        """200 against 150 leaves 50 on account."""
        self.add_invoice("100.00", date(2024, 1, 31))
        self.add_invoice("50.00", date(2024, 2, 29))
        payment_id = uuid4()

        explanation = self.ledger.apply_payment(
            self.customer_id, self.plan("200.00"), payment_id=payment_id,
        )

        assert explanation.excess_credit == usd("50.00")
        assert explanation.new_balance == usd("-50.00")
        assert explanation.balance_type == BalanceType.CREDIT
        assert self.credit() == usd("50.00")
        receipt = self.store.get_receipt(payment_id)
        assert receipt.balance_credited == usd("50.00")
        assert receipt.total_applied == usd("150.00")

    def test_payment_after_first_invoice_settled(self):
        """30 against the remaining 50 invoice leaves it PARTIAL."""
        self.add_invoice("100.00", date(2024, 1, 1), amount_paid="100.00", status=InvoiceStatus.PAID)
        second = self.add_invoice("50.00", date(2024, 2, 1))
        plan = self.plan("30.00")

        self.ledger.apply_payment(self.customer_id, plan)

        assert plan.unallocated == usd("0.00")
        assert self.invoice(second.id).amount_paid == usd("30.00")
        assert self.invoice(second.id).status == InvoiceStatus.PARTIAL

    def test_single_invoice_overpaid(self):
        """200 against one 100 invoice pays it and leaves 100 credit."""
        invoice = self.add_invoice("100.00", date(2024, 1, 1))
        plan = self.plan("200.00")

        explanation = self.ledger.apply_payment(self.customer_id, plan)

        assert plan.unallocated == usd("100.00")
        assert self.invoice(invoice.id).status == InvoiceStatus.PAID
        assert explanation.balance_type == BalanceType.CREDIT

    def test_exact_payment_zeroes_balance(self):
        self.add_invoice("75.00", date(2024, 1, 31))

        explanation = self.ledger.apply_payment(self.customer_id, self.plan("75.00"))

        assert explanation.new_balance == usd("0.00")
        assert explanation.balance_type == BalanceType.ZERO

    def test_receipt_recorded(self, deterministic_clock):
        """Receipts carry a formatted number and the clock's date."""
        self.add_invoice("10.00", date(2024, 1, 31))
        payment_id = uuid4()

        self.ledger.apply_payment(
            self.customer_id, self.plan("10.00"),
            payment_id=payment_id, reference_number="MPESA-123",
        )

        receipt = self.store.get_receipt(payment_id)
        assert receipt.receipt_number == "RCP-000001"
        assert receipt.payment_date == deterministic_clock.today()
        assert receipt.reference_number == "MPESA-123"
        assert receipt.status == ReceiptStatus.ACTIVE

    def test_failed_commit_returns_receipt_number(self):
        """A refused commit does not leave a gap in receipt numbers."""
        self.add_invoice("10.00", date(2024, 1, 31))
        self.store.next_receipt_sequence()
        with pytest.raises(StaleStateError):
            self.store.commit(LedgerMutation(
                customer_id=self.customer_id,
                account_expected_version=5,
                new_credit=usd("0.00"),
                invoice_updates=(),
                actor_id=self.actor_id,
                reversed_receipt_id=uuid4(),
            ))
        payment_id = uuid4()

        self.ledger.apply_payment(self.customer_id, self.plan("10.00"), payment_id=payment_id)

        assert self.store.get_receipt(payment_id).receipt_number == "RCP-000001"

    def test_versions_bumped(self):
        invoice = self.add_invoice("10.00", date(2024, 1, 31))

        self.ledger.apply_payment(self.customer_id, self.plan("10.00"))

        assert self.invoice(invoice.id).version == invoice.version + 1
        assert self.store.get_account(self.customer_id, "USD").version == 1

    def test_reused_payment_id_rejected(self):
        self.add_invoice("100.00", date(2024, 1, 31))
        payment_id = uuid4()
        self.ledger.apply_payment(self.customer_id, self.plan("10.00"), payment_id=payment_id)

        with pytest.raises(InvalidStateError):
            self.ledger.apply_payment(self.customer_id, self.plan("10.00"), payment_id=payment_id)

    def test_stale_plan_rejected_without_effect(self):
        """A plan computed before another payment cannot be replayed."""
        invoice = self.add_invoice("100.00", date(2024, 1, 31))
        plan = self.plan("100.00")
        self.ledger.apply_payment(self.customer_id, plan)

        with pytest.raises(StaleStateError):
            self.ledger.apply_payment(self.customer_id, plan)

        assert self.invoice(invoice.id).amount_paid == usd("100.00")
        assert len(self.store.customer_receipts(self.customer_id)) == 1

    def test_plan_for_cancelled_invoice_rejected(self):
        """Cancelling an invoice after planning blocks the payment."""
        invoice = self.add_invoice("100.00", date(2024, 1, 31))
        plan = self.plan("100.00")
        self.store.set_invoice_status(invoice.id, InvoiceStatus.CANCELLED, self.actor_id)

        with pytest.raises(InvoiceNotPayableError):
            self.ledger.apply_payment(self.customer_id, plan)

        assert self.invoice(invoice.id).amount_paid == usd("0.00")
        assert self.invoice(invoice.id).status == InvoiceStatus.CANCELLED
        assert self.store.customer_receipts(self.customer_id) == []

    def test_plan_with_moved_balance_rejected(self):
        """A plan whose previous_balance no longer matches is stale even if it fits."""
        invoice = self.add_invoice("100.00", date(2024, 1, 31))
        plan = self.plan("60.00")
        self.ledger.apply_payment(self.customer_id, self.plan("30.00"))

        with pytest.raises(StaleStateError):
            self.ledger.apply_payment(self.customer_id, plan)

        assert self.invoice(invoice.id).amount_paid == usd("30.00")
        assert len(self.store.customer_receipts(self.customer_id)) == 1

    def test_item_beyond_invoice_total_rejected(self):
        """A hand-built item larger than the invoice cannot overpay it."""
        invoice = self.add_invoice("100.00", date(2024, 1, 31))
        plan = AllocationPlan(
            payment_amount=usd("150.00"),
            items=(ReceiptItem(invoice.id, usd("150.00"), previous_balance=usd("100.00")),),
            unallocated=usd("0.00"),
        )

        with pytest.raises(OverpaymentError):
            self.ledger.apply_payment(self.customer_id, plan)

        assert self.invoice(invoice.id).amount_paid == usd("0.00")

    def test_other_customers_invoice_rejected(self):
        """Items may only touch the paying customer's invoices."""
        other = self.make_invoice(uuid4(), "10.00", due_date=date(2024, 1, 31))
        self.store.add_invoice(other, self.actor_id)
        plan = self.engine.allocate(
            usd("10.00"),
            [other.to_outstanding(date(2024, 1, 1))],
            [ExplicitAllocation(other.id, usd("10.00"))],
        )

        with pytest.raises(UnknownInvoiceError):
            self.ledger.apply_payment(self.customer_id, plan)

    def test_expected_version_mismatch(self):
        self.add_invoice("10.00", date(2024, 1, 31))

        with pytest.raises(StaleStateError):
            self.ledger.apply_payment(self.customer_id, self.plan("10.00"), expected_version=3)

    def test_credit_applied_must_exist(self):
        """Cannot draw credit the customer does not hold."""
        self.add_invoice("100.00", date(2024, 1, 31))

        with pytest.raises(InvalidStateError):
            self.ledger.apply_payment(
                self.customer_id, self.plan("50.00"), credit_applied=usd("20.00"),
            )

    def test_credit_cannot_cover_whole_payment(self):
        """Some money must be received."""
        self.ledger.apply_payment(self.customer_id, self.plan("30.00"))
        self.add_invoice("100.00", date(2024, 1, 31))

        with pytest.raises(InvalidAmountError):
            self.ledger.apply_payment(
                self.customer_id, self.plan("30.00"), credit_applied=usd("30.00"),
            )


class TestCreditDrawdown(LedgerTestBase):
    """Using credit on account to settle invoices."""

    def test_credit_issued_to_invoice(self):
        """50 credit plus 50 cash settles a 100 invoice."""
        self.ledger.apply_payment(self.customer_id, self.plan("50.00"))
        invoice = self.add_invoice("100.00", date(2024, 1, 31))
        payment_id = uuid4()

        explanation = self.ledger.apply_payment(
            self.customer_id, self.plan("100.00"),
            payment_id=payment_id, credit_applied=usd("50.00"),
        )

        receipt = self.store.get_receipt(payment_id)
        assert receipt.total_amount == usd("50.00")
        assert receipt.balance_issued == usd("50.00")
        assert receipt.balance_credited == usd("0.00")
        assert self.invoice(invoice.id).status == InvoiceStatus.PAID
        assert self.credit() == usd("0.00")
        assert explanation.previous_balance == usd("50.00")
        assert explanation.new_balance == usd("0.00")


class TestReverse(LedgerTestBase):
    """reverse() undoes apply_payment exactly."""

    def test_reverse_restores_invoices_and_credit(self):
        jan = self.add_invoice("100.00", date(2024, 1, 31))
        feb = self.add_invoice("50.00", date(2024, 2, 29), amount_paid="10.00")
        before = {i.id: i.amount_paid for i in self.store.customer_invoices(self.customer_id)}
        payment_id = uuid4()
        self.ledger.apply_payment(self.customer_id, self.plan("200.00"), payment_id=payment_id)

        self.ledger.reverse(payment_id, actor_id=self.actor_id)

        after = {i.id: i.amount_paid for i in self.store.customer_invoices(self.customer_id)}
        assert after == before
        assert self.invoice(jan.id).status == InvoiceStatus.SENT
        assert self.invoice(feb.id).status == InvoiceStatus.PARTIAL
        assert self.credit() == usd("0.00")
        assert self.store.get_receipt(payment_id).status == ReceiptStatus.REVERSED

    def test_reverse_restores_drawn_credit(self):
        self.ledger.apply_payment(self.customer_id, self.plan("50.00"))
        self.add_invoice("100.00", date(2024, 1, 31))
        payment_id = uuid4()
        self.ledger.apply_payment(
            self.customer_id, self.plan("100.00"),
            payment_id=payment_id, credit_applied=usd("50.00"),
        )

        self.ledger.reverse(payment_id)

        assert self.credit() == usd("50.00")

    def test_reverse_twice_rejected(self):
        self.add_invoice("100.00", date(2024, 1, 31))
        payment_id = uuid4()
        self.ledger.apply_payment(self.customer_id, self.plan("40.00"), payment_id=payment_id)
        self.ledger.reverse(payment_id)

        with pytest.raises(ReceiptAlreadyReversedError):
            self.ledger.reverse(payment_id)

    def test_reverse_unknown_rejected(self):
        with pytest.raises(ReceiptNotFoundError):
            self.ledger.reverse(uuid4())

    def test_reverse_after_credit_consumed_rejected(self):
        """Credit from a payment that was later spent cannot be taken back."""
        first = uuid4()
        self.ledger.apply_payment(self.customer_id, self.plan("50.00"), payment_id=first)
        self.add_invoice("100.00", date(2024, 1, 31))
        self.ledger.apply_payment(
            self.customer_id, self.plan("100.00"), credit_applied=usd("50.00"),
        )

        with pytest.raises(InvalidStateError):
            self.ledger.reverse(first)

        assert self.store.get_receipt(first).status == ReceiptStatus.ACTIVE
        assert self.credit() == usd("0.00")

    def test_reverse_with_stale_version(self):
        self.add_invoice("100.00", date(2024, 1, 31))
        payment_id = uuid4()
        self.ledger.apply_payment(self.customer_id, self.plan("40.00"), payment_id=payment_id)

        with pytest.raises(StaleStateError):
            self.ledger.reverse(payment_id, expected_version=0)
