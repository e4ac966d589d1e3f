"""
BalanceLedger (``receivables_modules.payments.ledger``).

Responsibility
--------------
Commits an allocation plan against a customer's invoices and credit on
account, explains the resulting balance change, and reverses payments
exactly. Every operation reads state from the storage collaborator,
builds ONE ``LedgerMutation`` and hands it to ``store.commit``.

Architecture position
---------------------
**Modules layer** -- stateful ledger over a ``LedgerStore``. Uses the pure
``BalanceCalculator`` for status and balance arithmetic. Store, clock and
config are constructor parameters; the ledger holds no other state.

Invariants enforced
-------------------
* ``0 <= invoice.amount_paid <= invoice.total_amount`` after every commit.
* ``sum(items) + balance_credited == payment + balance_issued`` per receipt.
* ``reverse(apply_payment(p))`` restores every touched invoice's
  ``amount_paid`` and the customer's credit on account exactly.
* No partial effects: all checks run before the single commit.

Failure modes
-------------
* ``UnknownInvoiceError`` -- an item names an invoice the customer does not have.
* ``InvoiceNotPayableError`` -- an item targets a draft or cancelled invoice.
* ``OverpaymentError`` -- an item would push amount_paid past the total.
* ``ReceiptNotFoundError`` / ``ReceiptAlreadyReversedError`` -- bad reversal.
* ``InvalidStateError`` -- reversal cannot be applied exactly (credit
  already consumed), or a payment id is reused.
* ``StaleStateError`` -- caller's expected version or a store version check
  does not match, or an item's ``previous_balance`` is no longer the
  invoice's outstanding balance.
* ``PersistenceError`` -- raised by SQL-backed stores on storage failure.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from receivables_engines.allocation import AllocationPlan, ReceiptItem
from receivables_engines.balance import BalanceCalculator, BalanceExplanation
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.domain.status import PaymentMethodType
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
from receivables_kernel.logging_config import LogContext, get_logger
from receivables_modules.payments.config import PaymentsConfig
from receivables_modules.payments.models import CustomerAccount, Invoice, Receipt
from receivables_modules.payments.store import (
    InvoiceUpdate,
    LedgerMutation,
    LedgerStore,
    unique_ids,
)

logger = get_logger("modules.payments.ledger")

SYSTEM_ACTOR_ID = UUID(int=0)


class BalanceLedger:
    """
    Applies and reverses payments for customers.

    Contract:
        Synchronous, single caller per customer. Concurrent callers are
        serialized by the store's version checks.
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
        self._calculator = BalanceCalculator()

    def apply_payment(
        self,
        customer_id: UUID,
        allocation: AllocationPlan,
        *,
        payment_id: UUID | None = None,
        payment_method_id: str | None = None,
        payment_method_type: PaymentMethodType | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
        credit_applied: Money | None = None,
        expected_version: int | None = None,
        actor_id: UUID | None = None,
    ) -> BalanceExplanation:
        """
        Commit ``allocation`` for ``customer_id``.

        Args:
            customer_id: Customer who paid.
            allocation: Plan produced by AllocationEngine.allocate.
            payment_id: Id for the new receipt; generated when omitted.
            credit_applied: Credit on account that was added to the payment
                before allocating. Only the part actually needed for the
                items is drawn down (recorded as ``balance_issued``).
            expected_version: CustomerAccount version the caller read.
            actor_id: Who is recording the payment.

        Returns:
            BalanceExplanation for the payment.
        """
        payment_id = payment_id or uuid4()
        actor_id = actor_id or SYSTEM_ACTOR_ID
        currency = allocation.payment_amount.currency
        zero = Money.zero(currency)
        credit_applied = credit_applied or zero

        with LogContext.bind(customer_id=customer_id, payment_id=payment_id, actor_id=actor_id):
            logger.info("payment_apply_started", extra={
                "payment_amount": str(allocation.payment_amount.amount),
                "item_count": allocation.invoice_count,
                "credit_applied": str(credit_applied.amount),
            })

            account = self._load_account(customer_id, allocation.payment_amount, expected_version)
            if self._store.get_receipt(payment_id) is not None:
                raise InvalidStateError(f"Payment {payment_id} has already been applied")

            payment_received = allocation.payment_amount - credit_applied
            if not payment_received.is_positive:
                raise InvalidAmountError("payment_received", str(payment_received.amount))
            if credit_applied.is_negative or credit_applied > account.credit_on_account:
                raise InvalidStateError(
                    f"Credit applied {credit_applied} is not available; "
                    f"customer holds {account.credit_on_account}"
                )

            items = allocation.items
            invoices = self._load_invoices(customer_id, items)
            self._check_plan_current(invoices, items)
            previous_balance = self._balance_of(account)
            updates = self._apply_items(invoices, items)

            invoice_payments = allocation.total_allocated
            balance_issued = min(credit_applied, invoice_payments)
            balance_credited = payment_received + balance_issued - invoice_payments
            new_credit = account.credit_on_account - balance_issued + balance_credited

            receipt = Receipt(
                id=payment_id,
                receipt_number=self._config.format_receipt_number(
                    self._store.next_receipt_sequence()
                ),
                customer_id=customer_id,
                total_amount=payment_received,
                items=tuple(items),
                balance_issued=balance_issued,
                balance_credited=balance_credited,
                payment_date=self._clock.today(),
                payment_method_id=payment_method_id,
                payment_method_type=payment_method_type,
                reference_number=reference_number,
                notes=notes,
            )

            self._store.commit(LedgerMutation(
                customer_id=customer_id,
                account_expected_version=account.version,
                new_credit=new_credit,
                invoice_updates=updates,
                actor_id=actor_id,
                receipt=receipt,
            ))

            explanation = self._calculator.explain(
                previous_balance=previous_balance,
                payment_received=payment_received,
                invoice_payments=invoice_payments,
                excess_credit=balance_credited,
                credit_issued=balance_issued,
            )

            logger.info("payment_applied", extra={
                "receipt_number": receipt.receipt_number,
                "invoice_payments": str(invoice_payments.amount),
                "balance_issued": str(balance_issued.amount),
                "balance_credited": str(balance_credited.amount),
                "new_balance": str(explanation.new_balance.amount),
                "balance_type": explanation.balance_type.value,
            })
            return explanation

    def reverse(
        self,
        payment_id: UUID,
        *,
        expected_version: int | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        """
        Undo a payment exactly.

        Decrements each touched invoice by the recorded item amount, takes
        back the credited amount, restores any credit that was drawn, and
        marks the receipt REVERSED.
        """
        actor_id = actor_id or SYSTEM_ACTOR_ID

        with LogContext.bind(payment_id=payment_id, actor_id=actor_id):
            receipt = self._store.get_receipt(payment_id)
            if receipt is None:
                logger.warning("payment_reverse_unknown")
                raise ReceiptNotFoundError(str(payment_id))
            if receipt.is_reversed:
                logger.warning("payment_reverse_repeated")
                raise ReceiptAlreadyReversedError(str(payment_id))

            logger.info("payment_reverse_started", extra={
                "customer_id": str(receipt.customer_id),
                "receipt_number": receipt.receipt_number,
            })

            account = self._load_account(receipt.customer_id, receipt.total_amount, expected_version)
            invoices = self._load_invoices(receipt.customer_id, receipt.items)
            updates = self._apply_items(invoices, receipt.items, sign=-1)

            new_credit = (
                account.credit_on_account - receipt.balance_credited + receipt.balance_issued
            )
            if new_credit.is_negative:
                raise InvalidStateError(
                    f"Payment {payment_id} credited {receipt.balance_credited} but the "
                    f"customer only holds {account.credit_on_account}; the credit has "
                    "already been used"
                )

            self._store.commit(LedgerMutation(
                customer_id=receipt.customer_id,
                account_expected_version=account.version,
                new_credit=new_credit,
                invoice_updates=updates,
                actor_id=actor_id,
                reversed_receipt_id=receipt.id,
            ))

            logger.info("payment_reversed", extra={
                "customer_id": str(receipt.customer_id),
                "receipt_number": receipt.receipt_number,
                "invoices_restored": len(updates),
                "new_credit": str(new_credit.amount),
            })

    def _load_account(
        self,
        customer_id: UUID,
        amount: Money,
        expected_version: int | None,
    ) -> CustomerAccount:
        account = self._store.get_account(customer_id, amount.currency)
        if expected_version is not None and expected_version != account.version:
            logger.warning("ledger_stale_account", extra={
                "expected_version": expected_version,
                "actual_version": account.version,
            })
            raise StaleStateError(
                "CustomerAccount", str(customer_id), expected_version, account.version,
            )
        return account

    def _load_invoices(
        self,
        customer_id: UUID,
        items: tuple[ReceiptItem, ...],
    ) -> dict[UUID, Invoice]:
        ids = unique_ids([_as_uuid(item.invoice_id) for item in items])
        invoices = self._store.get_invoices(ids)
        for invoice_id in ids:
            invoice = invoices.get(invoice_id)
            if invoice is None or invoice.customer_id != customer_id:
                raise UnknownInvoiceError(str(invoice_id))
        return invoices

    def _check_plan_current(
        self,
        invoices: dict[UUID, Invoice],
        items: tuple[ReceiptItem, ...],
    ) -> None:
        """Reject plans computed against invoice state that has since changed."""
        for item in items:
            invoice = invoices[_as_uuid(item.invoice_id)]
            if not invoice.status.is_payable:
                logger.warning("ledger_invoice_not_payable", extra={
                    "invoice_id": str(invoice.id),
                    "status": invoice.status.value,
                })
                raise InvoiceNotPayableError(str(invoice.id), invoice.status.value)
            if item.previous_balance != invoice.outstanding_balance:
                logger.warning("ledger_stale_plan", extra={
                    "invoice_id": str(invoice.id),
                    "planned_balance": str(item.previous_balance.amount),
                    "outstanding_balance": str(invoice.outstanding_balance.amount),
                })
                raise StaleStateError("Invoice", str(invoice.id))

    def _apply_items(
        self,
        invoices: dict[UUID, Invoice],
        items: tuple[ReceiptItem, ...],
        sign: int = 1,
    ) -> tuple[InvoiceUpdate, ...]:
        """Per-invoice updates for adding (sign=1) or removing (sign=-1) items."""
        today = self._clock.today()
        paid = {invoice_id: invoice.amount_paid for invoice_id, invoice in invoices.items()}

        for item in items:
            invoice_id = _as_uuid(item.invoice_id)
            invoice = invoices[invoice_id]
            new_paid = paid[invoice_id] + item.amount_paid * sign
            if new_paid > invoice.total_amount:
                logger.warning("ledger_overpayment", extra={
                    "invoice_id": str(invoice_id),
                    "total_amount": str(invoice.total_amount.amount),
                    "amount_paid": str(paid[invoice_id].amount),
                    "applied": str(item.amount_paid.amount),
                })
                raise OverpaymentError(
                    str(invoice_id),
                    str(invoice.total_amount.amount),
                    str(paid[invoice_id].amount),
                    str(item.amount_paid.amount),
                )
            if new_paid.is_negative:
                raise InvalidStateError(
                    f"Reversing {item.amount_paid} from invoice {invoice_id} would leave "
                    f"a negative paid amount (currently {paid[invoice_id]})"
                )
            paid[invoice_id] = new_paid

        return tuple(
            InvoiceUpdate(
                invoice_id=invoice_id,
                amount_paid=paid[invoice_id],
                status=self._calculator.derive_status(
                    invoice.total_amount,
                    paid[invoice_id],
                    invoice.due_date,
                    today,
                    invoice.status,
                ),
                expected_version=invoice.version,
            )
            for invoice_id, invoice in invoices.items()
        )

    def _balance_of(self, account: CustomerAccount) -> Money:
        outstanding = [
            invoice.outstanding_balance
            for invoice in self._store.customer_invoices(account.customer_id)
            if invoice.status.is_payable
        ]
        return self._calculator.customer_balance(outstanding, account.credit_on_account)


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))
