"""
SqlAlchemyLedgerStore (``receivables_modules.payments.sql_store``).

Responsibility
--------------
``LedgerStore`` backed by a relational database through SQLAlchemy ORM.
Owns the transaction boundary of ``commit``: the whole ``LedgerMutation``
is written and committed, or rolled back.

Invariants enforced
-------------------
* Optimistic versions: account and invoice rows are read with
  ``SELECT ... FOR UPDATE`` and their ``version`` compared with the
  mutation's expected versions before anything is written.
* Receipt numbers come from a locked counter row, never max()+1.

Failure modes
-------------
* ``StaleStateError`` -- version mismatch; transaction rolled back.
* ``PersistenceError`` -- any ``SQLAlchemyError``; transaction rolled back,
  original exception chained as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from receivables_kernel.domain.status import InvoiceStatus, ReceiptStatus
from receivables_kernel.domain.values import Currency, Money
from receivables_kernel.exceptions import PersistenceError, StaleStateError, UnknownInvoiceError
from receivables_kernel.logging_config import get_logger
from receivables_modules.payments.models import CustomerAccount, Invoice, Receipt
from receivables_modules.payments.orm import (
    CustomerAccountModel,
    InvoiceModel,
    ReceiptModel,
    SequenceCounterModel,
)
from receivables_modules.payments.store import LedgerMutation

logger = get_logger("modules.payments.sql_store")

RECEIPT_SEQUENCE = "receipt"


class SqlAlchemyLedgerStore:
    """
    LedgerStore over a SQLAlchemy session.

    Contract:
        Read methods never commit. ``commit`` and ``add_invoice`` commit
        the session on success and roll it back on failure.
    """

    def __init__(self, session: Session):
        self._session = session

    def add_invoice(self, invoice: Invoice, actor_id: UUID) -> Invoice:
        """Seed an invoice (invoice creation is owned by the caller's application)."""
        try:
            self._session.add(InvoiceModel.from_dto(invoice, created_by_id=actor_id))
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error("invoice_insert_failed", extra={"invoice_id": str(invoice.id)})
            raise PersistenceError("add_invoice", str(e)) from e
        return invoice

    def set_invoice_status(self, invoice_id: UUID, status: InvoiceStatus, actor_id: UUID) -> Invoice:
        """Manual status change (e.g. cancellation by the owning application)."""
        try:
            model = self._session.get(InvoiceModel, invoice_id, with_for_update=True)
            if model is None:
                raise UnknownInvoiceError(str(invoice_id))
            model.status = status.value
            model.version += 1
            model.updated_by_id = actor_id
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError("set_invoice_status", str(e)) from e
        return model.to_dto()

    def get_account(self, customer_id: UUID, currency: Currency) -> CustomerAccount:
        model = self._account_model(customer_id)
        if model is None:
            return CustomerAccount(customer_id=customer_id, credit_on_account=Money.zero(currency))
        return model.to_dto()

    def get_invoices(self, invoice_ids: Iterable[UUID]) -> dict[UUID, Invoice]:
        ids = list(invoice_ids)
        if not ids:
            return {}
        models = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars().all()
        by_id = {m.id: m.to_dto() for m in models}
        return {i: by_id[i] for i in ids if i in by_id}

    def customer_invoices(self, customer_id: UUID) -> list[Invoice]:
        models = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.customer_id == customer_id)
            .order_by(InvoiceModel.due_date, InvoiceModel.invoice_date, InvoiceModel.invoice_number)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def get_receipt(self, payment_id: UUID) -> Receipt | None:
        model = self._session.execute(
            select(ReceiptModel)
            .where(ReceiptModel.id == payment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def customer_receipts(self, customer_id: UUID) -> list[Receipt]:
        models = self._session.execute(
            select(ReceiptModel)
            .where(ReceiptModel.customer_id == customer_id)
            .order_by(ReceiptModel.receipt_number)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def next_receipt_sequence(self) -> int:
        """
        Next receipt sequence value.

        The increment is flushed, not committed; it becomes durable with
        the following ``commit`` and is returned on rollback.
        """
        try:
            counter = self._session.execute(
                select(SequenceCounterModel)
                .where(SequenceCounterModel.name == RECEIPT_SEQUENCE)
                .with_for_update()  # Row-level lock
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

            if counter is None:
                counter = SequenceCounterModel(name=RECEIPT_SEQUENCE, current_value=0)
                self._session.add(counter)

            counter.current_value += 1
            self._session.flush()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError("next_receipt_sequence", str(e)) from e

        logger.debug("sequence_allocated", extra={
            "sequence_name": RECEIPT_SEQUENCE,
            "value": counter.current_value,
        })
        return counter.current_value

    def commit(self, mutation: LedgerMutation) -> None:
        try:
            self._apply(mutation)
            self._session.commit()
        except StaleStateError:
            self._session.rollback()
            logger.warning("ledger_commit_stale", extra={"customer_id": str(mutation.customer_id)})
            raise
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error("ledger_commit_failed", extra={
                "customer_id": str(mutation.customer_id),
                "error": str(e),
            })
            raise PersistenceError("commit", str(e)) from e

        logger.debug("ledger_mutation_committed", extra={
            "customer_id": str(mutation.customer_id),
            "invoice_updates": len(mutation.invoice_updates),
            "new_credit": str(mutation.new_credit.amount),
        })

    def _apply(self, mutation: LedgerMutation) -> None:
        account = self._account_model(mutation.customer_id, lock=True)
        actual = account.version if account else 0
        if actual != mutation.account_expected_version:
            raise StaleStateError(
                "CustomerAccount", str(mutation.customer_id),
                mutation.account_expected_version, actual,
            )
        if account is None:
            account = CustomerAccountModel(
                customer_id=mutation.customer_id,
                currency=mutation.new_credit.currency.code,
                credit_on_account=mutation.new_credit.amount,
                version=1,
                created_by_id=mutation.actor_id,
            )
            self._session.add(account)
        else:
            account.credit_on_account = mutation.new_credit.amount
            account.version += 1
            account.updated_by_id = mutation.actor_id

        for update in mutation.invoice_updates:
            invoice = self._session.execute(
                select(InvoiceModel)
                .where(InvoiceModel.id == update.invoice_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            actual = invoice.version if invoice else None
            if actual != update.expected_version:
                raise StaleStateError(
                    "Invoice", str(update.invoice_id), update.expected_version, actual,
                )
            invoice.amount_paid = update.amount_paid.amount
            invoice.status = update.status.value
            invoice.version += 1
            invoice.updated_by_id = mutation.actor_id

        if mutation.receipt is not None:
            self._session.add(ReceiptModel.from_dto(mutation.receipt, created_by_id=mutation.actor_id))
        else:
            receipt = self._session.execute(
                select(ReceiptModel)
                .where(ReceiptModel.id == mutation.reversed_receipt_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if receipt is None or receipt.status == ReceiptStatus.REVERSED.value:
                raise StaleStateError("Receipt", str(mutation.reversed_receipt_id))
            receipt.status = ReceiptStatus.REVERSED.value
            receipt.updated_by_id = mutation.actor_id

        self._session.flush()

    def _account_model(self, customer_id: UUID, lock: bool = False) -> CustomerAccountModel | None:
        stmt = select(CustomerAccountModel).where(CustomerAccountModel.customer_id == customer_id)
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
