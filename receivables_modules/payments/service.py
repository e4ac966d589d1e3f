"""
Payments Module Service - Orchestrates payment operations via engines + ledger.

Thin glue layer that:
1. Reads the customer's invoices and credit from the storage collaborator
2. Calls AllocationEngine to split a payment across outstanding invoices
3. Calls BalanceLedger to commit (or reverse) the allocation
4. Calls TaxCalculator to derive the tax information printed on receipts

All computation lives in engines. All mutation goes through the ledger,
which hands one mutation set to the store; the store owns the transaction.

Usage:
    service = PaymentService(InMemoryLedgerStore(), clock=clock)
    service.register_invoice(customer_id, "INV-001", Decimal("100.00"),
                             invoice_date=date(2024, 1, 1), due_date=date(2024, 1, 31))
    details = service.process_payment(customer_id, Decimal("120.00"))
    print(details.balance_explanation.balance_type)  # BalanceType.CREDIT
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from receivables_engines.allocation import (
    AllocationEngine,
    AllocationPlan,
    ExplicitAllocation,
    OutstandingInvoice,
    order_targets,
)
from receivables_engines.balance import BalanceCalculator
from receivables_engines.tax import DocumentTotals, TaxCalculator
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.domain.status import InvoiceStatus, PaymentMethodType
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import (
    OverAllocationError,
    ReceiptNotFoundError,
    ReceivablesError,
)
from receivables_kernel.logging_config import get_logger
from receivables_modules.payments.config import PaymentsConfig
from receivables_modules.payments.ledger import SYSTEM_ACTOR_ID, BalanceLedger
from receivables_modules.payments.models import (
    CustomerBalance,
    Invoice,
    Receipt,
    ReceiptWithDetails,
    TaxInformation,
)
from receivables_modules.payments.store import LedgerStore

logger = get_logger("modules.payments.service")


class PaymentService:
    """
    Orchestrates customer payments through engines and the ledger.

    Engine composition:
    - AllocationEngine: splitting payments across invoices
    - BalanceCalculator: customer balances and invoice status
    - TaxCalculator: receipt tax information and document totals

    Store, clock and config are constructor parameters; the service keeps
    no other state between calls.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        config: PaymentsConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or PaymentsConfig.with_defaults()
        self._ledger = BalanceLedger(store, clock=self._clock, config=self._config)
        self._allocation = AllocationEngine()
        self._balances = BalanceCalculator()
        self._tax = TaxCalculator()

    @property
    def ledger(self) -> BalanceLedger:
        return self._ledger

    # =========================================================================
    # Invoices and balances
    # =========================================================================

    def register_invoice(
        self,
        customer_id: UUID,
        invoice_number: str,
        total_amount: Money | Decimal | str,
        invoice_date: date,
        due_date: date,
        *,
        invoice_id: UUID | None = None,
        status: InvoiceStatus | None = None,
        actor_id: UUID | None = None,
    ) -> Invoice:
        """
        Make an invoice known to the ledger.

        Invoice creation belongs to the surrounding application; this only
        records the fields payments need. The status is derived from the
        due date unless DRAFT or CANCELLED is given.
        """
        total = self._money(total_amount)
        zero = Money.zero(total.currency)
        invoice = Invoice(
            id=invoice_id or uuid4(),
            customer_id=customer_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=due_date,
            total_amount=total,
            amount_paid=zero,
            status=self._balances.derive_status(
                total, zero, due_date, self._clock.today(),
                status or InvoiceStatus.SENT,
            ),
        )
        self._store.add_invoice(invoice, actor_id or SYSTEM_ACTOR_ID)
        logger.info("invoice_registered", extra={
            "customer_id": str(customer_id),
            "invoice_id": str(invoice.id),
            "invoice_number": invoice_number,
            "total_amount": str(total.amount),
            "status": invoice.status.value,
        })
        return invoice

    def cancel_invoice(self, invoice_id: UUID, actor_id: UUID | None = None) -> Invoice:
        """Mark an invoice CANCELLED so it no longer receives payments."""
        invoice = self._store.set_invoice_status(
            invoice_id, InvoiceStatus.CANCELLED, actor_id or SYSTEM_ACTOR_ID
        )
        logger.info("invoice_cancelled", extra={"invoice_id": str(invoice_id)})
        return invoice

    def outstanding_invoices(self, customer_id: UUID) -> list[OutstandingInvoice]:
        """Payable invoices with a balance, in the configured settlement order."""
        today = self._clock.today()
        targets = [
            invoice.to_outstanding(today)
            for invoice in self._store.customer_invoices(customer_id)
            if invoice.status.is_payable and invoice.outstanding_balance.is_positive
        ]
        return order_targets(targets, self._config.policy)

    def customer_balance(self, customer_id: UUID) -> CustomerBalance:
        """Net position: outstanding invoices minus credit on account."""
        open_invoices = self.outstanding_invoices(customer_id)
        account = self._store.get_account(customer_id, self._currency())
        total_outstanding = Money.total(
            (i.outstanding_balance for i in open_invoices), account.credit_on_account.currency
        )
        current = self._balances.customer_balance(
            [total_outstanding], account.credit_on_account
        )
        return CustomerBalance(
            customer_id=customer_id,
            total_outstanding=total_outstanding,
            credit_on_account=account.credit_on_account,
            current_balance=current,
            balance_type=self._balances.classify(current),
            open_invoice_count=len(open_invoices),
            overdue_invoice_count=sum(1 for i in open_invoices if i.is_overdue),
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def preview_payment(
        self,
        customer_id: UUID,
        amount: Money | Decimal | str,
        explicit_items: Sequence[ExplicitAllocation] | None = None,
    ) -> AllocationPlan:
        """Allocation that ``process_payment`` would commit. Changes nothing."""
        payment = self._money(amount)
        credit = self._credit_to_apply(customer_id, payment)
        return self._allocation.allocate(
            payment + credit,
            self.outstanding_invoices(customer_id),
            explicit_items,
            self._config.policy,
        )

    def process_payment(
        self,
        customer_id: UUID,
        amount: Money | Decimal | str,
        *,
        explicit_items: Sequence[ExplicitAllocation] | None = None,
        payment_method_id: str | None = None,
        payment_method_type: PaymentMethodType | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
        payment_id: UUID | None = None,
        expected_version: int | None = None,
        actor_id: UUID | None = None,
    ) -> ReceiptWithDetails:
        """
        Record a customer payment.

        Allocates the payment (plus credit on account when configured),
        commits it through the ledger and returns the receipt with its tax
        information and balance explanation.

        Raises:
            OverAllocationError: If overpayment is disabled and part of the
                payment would become credit.
            ReceivablesError: Any allocation or ledger failure.
        """
        payment = self._money(amount)
        payment_id = payment_id or uuid4()

        logger.info("payment_process_started", extra={
            "customer_id": str(customer_id),
            "payment_id": str(payment_id),
            "amount": str(payment.amount),
            "explicit": explicit_items is not None,
        })

        try:
            credit = self._credit_to_apply(customer_id, payment)
            plan = self._allocation.allocate(
                payment + credit,
                self.outstanding_invoices(customer_id),
                explicit_items,
                self._config.policy,
            )
            self._check_overpayment(payment, credit, plan)

            explanation = self._ledger.apply_payment(
                customer_id,
                plan,
                payment_id=payment_id,
                payment_method_id=payment_method_id,
                payment_method_type=payment_method_type,
                reference_number=reference_number,
                notes=notes,
                credit_applied=credit,
                expected_version=expected_version,
                actor_id=actor_id,
            )
        except ReceivablesError as e:
            logger.warning("payment_process_failed", extra={
                "customer_id": str(customer_id),
                "payment_id": str(payment_id),
                "error_code": e.code,
            })
            raise

        receipt = self._store.get_receipt(payment_id)
        logger.info("payment_process_committed", extra={
            "payment_id": str(payment_id),
            "receipt_number": receipt.receipt_number,
            "balance_type": explanation.balance_type.value,
        })
        return ReceiptWithDetails(
            receipt=receipt,
            tax_information=self.tax_information(receipt),
            balance_explanation=explanation,
        )

    def get_receipt_details(self, payment_id: UUID) -> ReceiptWithDetails:
        """Receipt with its tax information (no balance explanation)."""
        receipt = self._store.get_receipt(payment_id)
        if receipt is None:
            raise ReceiptNotFoundError(str(payment_id))
        return ReceiptWithDetails(receipt=receipt, tax_information=self.tax_information(receipt))

    def customer_receipts(
        self,
        customer_id: UUID,
        *,
        payment_method_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Receipt]:
        """
        The customer's receipts, optionally narrowed.

        ``start_date`` and ``end_date`` are inclusive bounds on the payment date.
        """
        return [
            receipt
            for receipt in self._store.customer_receipts(customer_id)
            if (payment_method_id is None or receipt.payment_method_id == payment_method_id)
            and (start_date is None or receipt.payment_date >= start_date)
            and (end_date is None or receipt.payment_date <= end_date)
        ]

    def delete_receipt(
        self,
        payment_id: UUID,
        *,
        expected_version: int | None = None,
        actor_id: UUID | None = None,
    ) -> Receipt:
        """Reverse a payment and return the (now REVERSED) receipt."""
        self._ledger.reverse(payment_id, expected_version=expected_version, actor_id=actor_id)
        return self._store.get_receipt(payment_id)

    # =========================================================================
    # Tax
    # =========================================================================

    def tax_information(self, receipt: Receipt) -> TaxInformation:
        """Tax included in the amount a receipt paid to invoices."""
        paid_to_invoices = receipt.total_applied
        breakdown = self._tax.extract_tax(paid_to_invoices, self._config.default_tax_rate)
        return TaxInformation(
            tax_rate=self._config.default_tax_rate,
            total_before_tax=breakdown.taxable_amount,
            tax_amount=breakdown.tax,
            total_amount_paid_to_invoices=paid_to_invoices,
            total_amount_received=receipt.total_amount,
            balance_issued=receipt.balance_issued,
            balance_credited=receipt.balance_credited,
        )

    def document_totals(
        self,
        subtotal: Money | Decimal | str,
        discount_percentage: Decimal | int | str = Decimal("0"),
        tax_rate: Decimal | int | str | None = None,
    ) -> DocumentTotals:
        """Invoice or quotation totals at the configured tax rate."""
        rate = self._config.default_tax_rate if tax_rate is None else tax_rate
        return self._tax.compute_totals(self._money(subtotal), rate, discount_percentage)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _currency(self) -> str:
        return self._config.currency

    def _money(self, amount: Money | Decimal | str) -> Money:
        if isinstance(amount, Money):
            return amount
        return Money.of(amount, self._currency())

    def _credit_to_apply(self, customer_id: UUID, payment: Money) -> Money:
        if not self._config.apply_credit_on_account:
            return Money.zero(payment.currency)
        return self._store.get_account(customer_id, payment.currency).credit_on_account

    def _check_overpayment(self, payment: Money, credit: Money, plan: AllocationPlan) -> None:
        if self._config.allow_overpayment:
            return
        applied = plan.total_allocated
        credited = payment + min(credit, applied) - applied
        if credited.is_positive:
            raise OverAllocationError(
                f"Payment {payment} exceeds the amount owed by {credited}",
                requested=str(payment.amount),
                available=str((payment - credited).amount),
            )
