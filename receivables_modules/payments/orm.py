"""
Payments ORM Models (``receivables_modules.payments.orm``).

Responsibility
--------------
SQLAlchemy persistence models for the SQL storage collaborator. Maps the
frozen dataclasses from ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence. Imports from ``receivables_kernel.db``
and sibling ``models.py``. MUST NOT be imported by ``receivables_kernel``
(``create_tables`` imports it lazily).

Invariants enforced
-------------------
* Amounts are stored as integers through ``MinorUnits`` -- never float.
* Every mutable row carries a ``version`` column for optimistic checks.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receivables_kernel.db.base import Base, TrackedBase
from receivables_kernel.db.types import AMOUNT_SCALE, MinorUnits
from receivables_kernel.domain.status import InvoiceStatus, PaymentMethodType, ReceiptStatus
from receivables_kernel.domain.values import Money


def _money(amount: Decimal, currency: str) -> Money:
    """Stored amount as Money at the currency's own precision."""
    return Money.of(amount, currency).round()


# ---------------------------------------------------------------------------
# 1. CustomerAccountModel
# ---------------------------------------------------------------------------


class CustomerAccountModel(TrackedBase):
    """
    ORM model for a customer's credit on account.

    Guarantees:
        - One row per customer (uq_receivables_accounts_customer).
        - version starts at 1 on first insert.
    """

    __tablename__ = "receivables_customer_accounts"

    __table_args__ = (
        UniqueConstraint("customer_id", name="uq_receivables_accounts_customer"),
    )

    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    credit_on_account: Mapped[Decimal] = mapped_column(
        MinorUnits(AMOUNT_SCALE), nullable=False, default=Decimal("0")
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from receivables_modules.payments.models import CustomerAccount

        return CustomerAccount(
            customer_id=self.customer_id,
            credit_on_account=_money(self.credit_on_account, self.currency),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<CustomerAccountModel {self.customer_id}: {self.credit_on_account} {self.currency}>"


# ---------------------------------------------------------------------------
# 2. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for the payment-relevant part of an invoice.

    Guarantees:
        - invoice_number is unique (uq_receivables_invoices_number).
        - status stored as the InvoiceStatus value.
    """

    __tablename__ = "receivables_invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_receivables_invoices_number"),
        Index("idx_receivables_invoices_customer", "customer_id"),
        Index("idx_receivables_invoices_due_date", "due_date"),
    )

    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        MinorUnits(AMOUNT_SCALE), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from receivables_modules.payments.models import Invoice

        return Invoice(
            id=self.id,
            customer_id=self.customer_id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            total_amount=_money(self.total_amount, self.currency),
            amount_paid=_money(self.amount_paid, self.currency),
            status=InvoiceStatus(self.status),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "InvoiceModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=dto.id,
            customer_id=dto.customer_id,
            invoice_number=dto.invoice_number,
            invoice_date=dto.invoice_date,
            due_date=dto.due_date,
            currency=dto.currency.code,
            total_amount=dto.total_amount.amount,
            amount_paid=dto.amount_paid.amount,
            status=dto.status.value,
            version=dto.version,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number}: {self.amount_paid}/{self.total_amount}>"


# ---------------------------------------------------------------------------
# 3. ReceiptModel / ReceiptItemModel
# ---------------------------------------------------------------------------


class ReceiptModel(TrackedBase):
    """
    ORM model for a recorded payment.

    Guarantees:
        - receipt_number is unique (uq_receivables_receipts_number).
        - items are loaded in allocation order (line_number).
    """

    __tablename__ = "receivables_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_receivables_receipts_number"),
        Index("idx_receivables_receipts_customer", "customer_id"),
    )

    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)
    balance_issued: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)
    balance_credited: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_method_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    items: Mapped[list["ReceiptItemModel"]] = relationship(
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptItemModel.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from receivables_modules.payments.models import Receipt

        return Receipt(
            id=self.id,
            receipt_number=self.receipt_number,
            customer_id=self.customer_id,
            total_amount=_money(self.total_amount, self.currency),
            items=tuple(item.to_dto(self.currency) for item in self.items),
            balance_issued=_money(self.balance_issued, self.currency),
            balance_credited=_money(self.balance_credited, self.currency),
            payment_date=self.payment_date,
            payment_method_id=self.payment_method_id,
            payment_method_type=(
                PaymentMethodType(self.payment_method_type) if self.payment_method_type else None
            ),
            reference_number=self.reference_number,
            notes=self.notes,
            status=ReceiptStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ReceiptModel":
        """Create ORM model (with its items) from frozen dataclass."""
        return cls(
            id=dto.id,
            receipt_number=dto.receipt_number,
            customer_id=dto.customer_id,
            currency=dto.total_amount.currency.code,
            total_amount=dto.total_amount.amount,
            balance_issued=dto.balance_issued.amount,
            balance_credited=dto.balance_credited.amount,
            payment_date=dto.payment_date,
            payment_method_id=dto.payment_method_id,
            payment_method_type=dto.payment_method_type.value if dto.payment_method_type else None,
            reference_number=dto.reference_number,
            notes=dto.notes,
            status=dto.status.value,
            created_by_id=created_by_id,
            items=[
                ReceiptItemModel.from_dto(item, line_number, created_by_id)
                for line_number, item in enumerate(dto.items, start=1)
            ],
        )

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.receipt_number}: {self.total_amount} {self.currency}>"


class ReceiptItemModel(TrackedBase):
    """ORM model for one invoice touched by a receipt."""

    __tablename__ = "receivables_receipt_items"

    __table_args__ = (
        UniqueConstraint("receipt_id", "line_number", name="uq_receivables_receipt_items_line"),
        Index("idx_receivables_receipt_items_invoice", "invoice_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("receivables_receipts.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(nullable=False)
    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    invoice_total: Mapped[Decimal | None] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=True)
    amount_paid: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)
    previous_balance: Mapped[Decimal] = mapped_column(MinorUnits(AMOUNT_SCALE), nullable=False)

    receipt: Mapped[ReceiptModel] = relationship(back_populates="items")

    def to_dto(self, currency: str):
        """Convert ORM model to frozen dataclass."""
        from receivables_modules.payments.models import ReceiptItem

        return ReceiptItem(
            invoice_id=self.invoice_id,
            amount_paid=_money(self.amount_paid, currency),
            previous_balance=_money(self.previous_balance, currency),
            invoice_number=self.invoice_number,
            invoice_total=(
                _money(self.invoice_total, currency) if self.invoice_total is not None else None
            ),
        )

    @classmethod
    def from_dto(cls, dto, line_number: int, created_by_id: UUID) -> "ReceiptItemModel":
        return cls(
            line_number=line_number,
            invoice_id=dto.invoice_id,
            invoice_number=dto.invoice_number,
            invoice_total=dto.invoice_total.amount if dto.invoice_total is not None else None,
            amount_paid=dto.amount_paid.amount,
            previous_balance=dto.previous_balance.amount,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# 4. SequenceCounterModel
# ---------------------------------------------------------------------------


class SequenceCounterModel(Base):
    """
    Named counter for receipt numbers.

    Row-level locking keeps the sequence monotonic under concurrency.
    """

    __tablename__ = "receivables_sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
