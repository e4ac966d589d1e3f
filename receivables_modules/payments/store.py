"""
Ledger Storage Collaborator (``receivables_modules.payments.store``).

Responsibility
--------------
Defines the contract between ``BalanceLedger`` and whatever holds
customer accounts, invoices and receipts: read methods returning frozen
models, and a single ``commit`` that applies one ``LedgerMutation``
atomically. Ships ``InMemoryLedgerStore`` for tests, previews and
embedding; ``SqlAlchemyLedgerStore`` lives in ``sql_store.py``.

Invariants enforced
-------------------
* All-or-nothing: ``commit`` validates every version before applying
  anything, so a failed commit leaves no partial mutation visible.
* Optimistic versions: every applied update bumps the version by one; an
  expected version that does not match raises ``StaleStateError``.
* Receipt sequence values taken before a failed commit are reused by the
  next payment.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from receivables_kernel.domain.status import InvoiceStatus, ReceiptStatus
from receivables_kernel.domain.values import Currency, Money
from receivables_kernel.exceptions import StaleStateError, UnknownInvoiceError
from receivables_kernel.logging_config import get_logger
from receivables_modules.payments.models import CustomerAccount, Invoice, Receipt

logger = get_logger("modules.payments.store")


@dataclass(frozen=True)
class InvoiceUpdate:
    """New paid amount and status for one invoice."""

    invoice_id: UUID
    amount_paid: Money
    status: InvoiceStatus
    expected_version: int


@dataclass(frozen=True)
class LedgerMutation:
    """
    Everything one ledger operation changes, applied as a unit.

    Exactly one of ``receipt`` (a payment being recorded) and
    ``reversed_receipt_id`` (a payment being reversed) is set.
    """

    customer_id: UUID
    account_expected_version: int
    new_credit: Money
    invoice_updates: tuple[InvoiceUpdate, ...]
    actor_id: UUID
    receipt: Receipt | None = None
    reversed_receipt_id: UUID | None = None

    def __post_init__(self) -> None:
        if (self.receipt is None) == (self.reversed_receipt_id is None):
            raise ValueError("LedgerMutation needs exactly one of receipt or reversed_receipt_id")


class LedgerStore(Protocol):
    """Storage collaborator used by BalanceLedger."""

    def get_account(self, customer_id: UUID, currency: Currency) -> CustomerAccount:
        """The customer's account; a zero-credit version-0 account if none exists."""
        ...

    def get_invoices(self, invoice_ids: Iterable[UUID]) -> dict[UUID, Invoice]:
        """Invoices by id. Unknown ids are absent from the result."""
        ...

    def customer_invoices(self, customer_id: UUID) -> list[Invoice]:
        ...

    def get_receipt(self, payment_id: UUID) -> Receipt | None:
        ...

    def next_receipt_sequence(self) -> int:
        """Monotonic sequence for receipt numbers."""
        ...

    def commit(self, mutation: LedgerMutation) -> None:
        """Apply the mutation atomically or raise without applying anything."""
        ...

    def add_invoice(self, invoice: Invoice, actor_id: UUID) -> Invoice:
        ...

    def set_invoice_status(self, invoice_id: UUID, status: InvoiceStatus, actor_id: UUID) -> Invoice:
        ...

    def customer_receipts(self, customer_id: UUID) -> list[Receipt]:
        ...


class InMemoryLedgerStore:
    """
    Dict-backed LedgerStore.

    Not thread-safe; one caller at a time, like the ledger itself.
    """

    def __init__(self) -> None:
        self._accounts: dict[UUID, CustomerAccount] = {}
        self._invoices: dict[UUID, Invoice] = {}
        self._receipts: dict[UUID, Receipt] = {}
        self._receipt_sequence = 0
        self._committed_sequence = 0

    def add_invoice(self, invoice: Invoice, actor_id: UUID | None = None) -> Invoice:
        """Seed an invoice (invoice creation is owned by the caller's application)."""
        if invoice.id in self._invoices:
            raise ValueError(f"Invoice {invoice.id} already exists")
        self._invoices[invoice.id] = invoice
        return invoice

    def set_invoice_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        actor_id: UUID | None = None,
    ) -> Invoice:
        """Manual status change (e.g. cancellation by the owning application)."""
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise UnknownInvoiceError(str(invoice_id))
        updated = replace(invoice, status=status, version=invoice.version + 1)
        self._invoices[invoice_id] = updated
        return updated

    def get_account(self, customer_id: UUID, currency: Currency) -> CustomerAccount:
        account = self._accounts.get(customer_id)
        if account is None:
            return CustomerAccount(customer_id=customer_id, credit_on_account=Money.zero(currency))
        return account

    def get_invoices(self, invoice_ids: Iterable[UUID]) -> dict[UUID, Invoice]:
        return {i: self._invoices[i] for i in invoice_ids if i in self._invoices}

    def customer_invoices(self, customer_id: UUID) -> list[Invoice]:
        return [i for i in self._invoices.values() if i.customer_id == customer_id]

    def get_receipt(self, payment_id: UUID) -> Receipt | None:
        return self._receipts.get(payment_id)

    def customer_receipts(self, customer_id: UUID) -> list[Receipt]:
        return [r for r in self._receipts.values() if r.customer_id == customer_id]

    def next_receipt_sequence(self) -> int:
        """Next sequence value; handed back if the following commit fails."""
        self._receipt_sequence += 1
        return self._receipt_sequence

    def commit(self, mutation: LedgerMutation) -> None:
        try:
            self._check_versions(mutation)
        except StaleStateError:
            self._receipt_sequence = self._committed_sequence
            logger.warning("ledger_commit_stale", extra={"customer_id": str(mutation.customer_id)})
            raise
        self._committed_sequence = self._receipt_sequence

        account = self._accounts.get(mutation.customer_id)
        self._accounts[mutation.customer_id] = CustomerAccount(
            customer_id=mutation.customer_id,
            credit_on_account=mutation.new_credit,
            version=(account.version if account else 0) + 1,
        )

        for update in mutation.invoice_updates:
            invoice = self._invoices[update.invoice_id]
            self._invoices[update.invoice_id] = replace(
                invoice,
                amount_paid=update.amount_paid,
                status=update.status,
                version=invoice.version + 1,
            )

        if mutation.receipt is not None:
            self._receipts[mutation.receipt.id] = mutation.receipt
        else:
            receipt = self._receipts[mutation.reversed_receipt_id]
            self._receipts[receipt.id] = replace(receipt, status=ReceiptStatus.REVERSED)

        logger.debug("ledger_mutation_committed", extra={
            "customer_id": str(mutation.customer_id),
            "invoice_updates": len(mutation.invoice_updates),
            "new_credit": str(mutation.new_credit.amount),
        })

    def _check_versions(self, mutation: LedgerMutation) -> None:
        account = self._accounts.get(mutation.customer_id)
        actual = account.version if account else 0
        if actual != mutation.account_expected_version:
            raise StaleStateError(
                "CustomerAccount", str(mutation.customer_id),
                mutation.account_expected_version, actual,
            )

        for update in mutation.invoice_updates:
            invoice = self._invoices.get(update.invoice_id)
            actual = invoice.version if invoice else None
            if actual != update.expected_version:
                raise StaleStateError(
                    "Invoice", str(update.invoice_id), update.expected_version, actual,
                )

        if mutation.receipt is not None and mutation.receipt.id in self._receipts:
            raise StaleStateError("Receipt", str(mutation.receipt.id))
        if mutation.reversed_receipt_id is not None:
            receipt = self._receipts.get(mutation.reversed_receipt_id)
            if receipt is None or receipt.is_reversed:
                raise StaleStateError("Receipt", str(mutation.reversed_receipt_id))


def unique_ids(ids: Sequence[UUID]) -> list[UUID]:
    """Ids in first-seen order without duplicates."""
    return list(dict.fromkeys(ids))
