"""
Module: receivables_engines.allocation
Responsibility:
    Decide how a single customer payment is split across that customer's
    outstanding invoices, and how much of it is left over as unapplied
    credit. Supports caller-chosen (explicit) allocations and automatic
    oldest-due-first allocation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import receivables_kernel (domain values, status vocabulary,
    exceptions, logging).

Invariants enforced:
    - Conservation: sum(items.amount_paid) + unallocated == payment_amount,
      exactly (Decimal arithmetic, no rounding step in between).
    - Cap: no item's amount_paid exceeds the invoice's outstanding balance
      at allocation time (recorded as the item's previous_balance).
    - Ordering: items are returned in allocation order.
    - Purity: no clock access, no I/O; safe to call for previews.

Failure modes (all ValidationError subclasses):
    - InvalidAmountError on a non-positive payment or item amount, or an
      amount with sub-minor-unit precision.
    - CurrencyMismatchError when targets or items are in another currency.
    - UnknownInvoiceError / DuplicateAllocationError / InvoiceNotPayableError
      / OverAllocationError on an invalid explicit allocation.

Usage:
    from receivables_engines.allocation import AllocationEngine, OutstandingInvoice
    from receivables_kernel.domain.values import Money

    plan = AllocationEngine().allocate(
        payment_amount=Money.of("120.00", "USD"),
        targets=[
            OutstandingInvoice("inv-1", Money.of("100.00", "USD"), due_date=date(2024, 1, 1)),
            OutstandingInvoice("inv-2", Money.of("50.00", "USD"), due_date=date(2024, 2, 1)),
        ],
    )
    # plan.items -> inv-1: 100.00, inv-2: 20.00; plan.unallocated -> 0.00
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.status import InvoiceStatus
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import (
    CurrencyMismatchError,
    DuplicateAllocationError,
    InvalidAmountError,
    InvoiceNotPayableError,
    OverAllocationError,
    UnknownInvoiceError,
)
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationPolicy(str, Enum):
    """Order in which automatic allocation settles invoices."""

    DUE_DATE = "due_date"  # Oldest due first, invoice date breaks ties
    INVOICE_DATE = "invoice_date"  # Oldest issued first, due date breaks ties


@dataclass(frozen=True)
class OutstandingInvoice:
    """
    An invoice as seen by the allocation engine.

    Contract:
        Snapshot of one invoice's state at allocation time, supplied by the
        caller (read from the storage collaborator).
    Guarantees:
        - ``outstanding_balance`` is non-negative and fits the currency's
          minor unit.
    """

    invoice_id: str | UUID
    outstanding_balance: Money
    due_date: date
    invoice_date: date | None = None
    invoice_number: str | None = None
    total_amount: Money | None = None
    amount_paid: Money | None = None
    status: InvoiceStatus = InvoiceStatus.SENT
    is_overdue: bool = False

    def __post_init__(self) -> None:
        if self.outstanding_balance.is_negative:
            raise InvalidAmountError(
                "outstanding_balance",
                str(self.outstanding_balance.amount),
                reason="cannot be negative",
            )
        require_currency_precision("outstanding_balance", self.outstanding_balance)


@dataclass(frozen=True)
class ExplicitAllocation:
    """A caller-chosen amount to apply to one invoice."""

    invoice_id: str | UUID
    amount: Money


@dataclass(frozen=True)
class ReceiptItem:
    """
    Amount of a payment applied to one invoice.

    Guarantees:
        - ``amount_paid <= previous_balance``.
        - ``previous_balance`` is the outstanding balance before this
          payment; it is recorded once and never recomputed.
    """

    invoice_id: str | UUID
    amount_paid: Money
    previous_balance: Money
    invoice_number: str | None = None
    invoice_total: Money | None = None

    @property
    def remaining_balance(self) -> Money:
        """Outstanding balance left on the invoice after this payment."""
        return self.previous_balance - self.amount_paid

    @property
    def settles_invoice(self) -> bool:
        return self.remaining_balance.is_zero


@dataclass(frozen=True)
class AllocationPlan:
    """
    Complete allocation result.

    Guarantees:
        - ``total_allocated + unallocated == payment_amount``.
    Non-goals:
        - Does not persist anything; BalanceLedger commits plans.
    """

    payment_amount: Money
    items: tuple[ReceiptItem, ...]
    unallocated: Money
    policy: AllocationPolicy | None = None  # None when explicitly allocated

    @property
    def total_allocated(self) -> Money:
        return Money.total((item.amount_paid for item in self.items), self.payment_amount.currency)

    @property
    def is_explicit(self) -> bool:
        return self.policy is None

    @property
    def is_fully_allocated(self) -> bool:
        """True if no part of the payment becomes credit."""
        return self.unallocated.is_zero

    @property
    def invoice_count(self) -> int:
        return len(self.items)


def order_targets(
    targets: Sequence[OutstandingInvoice],
    policy: AllocationPolicy = AllocationPolicy.DUE_DATE,
) -> list[OutstandingInvoice]:
    """
    Sort invoices into settlement order.

    The sort is stable, so invoices with identical dates keep the order in
    which the caller supplied them.
    """
    if policy == AllocationPolicy.INVOICE_DATE:
        key = lambda t: (t.invoice_date or t.due_date, t.due_date)  # noqa: E731
    else:
        key = lambda t: (t.due_date, t.invoice_date or t.due_date)  # noqa: E731
    return sorted(targets, key=key)


class AllocationEngine:
    """
    Allocate a payment across a customer's outstanding invoices.

    Contract:
        Pure functions, no I/O, no database access.
    Guarantees:
        - Conservation and per-invoice caps hold for every returned plan.
        - Overpayment is not an error: the excess is ``unallocated``.
    Non-goals:
        - Does not mutate invoices; see BalanceLedger.apply_payment.
    """

    @traced_engine(
        "allocation", "1.0",
        fingerprint_fields=("payment_amount", "targets", "explicit_items", "policy"),
    )
    def allocate(
        self,
        payment_amount: Money,
        targets: Sequence[OutstandingInvoice],
        explicit_items: Sequence[ExplicitAllocation] | None = None,
        policy: AllocationPolicy = AllocationPolicy.DUE_DATE,
    ) -> AllocationPlan:
        """
        Allocate ``payment_amount`` to ``targets``.

        Args:
            payment_amount: Money received; must be positive.
            targets: The customer's outstanding invoices.
            explicit_items: Caller-chosen invoice/amount pairs. When given
                (even empty), no automatic allocation happens.
            policy: Settlement order for automatic allocation.

        Returns:
            AllocationPlan with items in allocation order.

        Raises:
            ValidationError subclasses, see module docstring.
        """
        logger.info("allocation_started", extra={
            "payment_amount": str(payment_amount.amount),
            "currency": payment_amount.currency.code,
            "target_count": len(targets),
            "explicit": explicit_items is not None,
            "policy": policy.value,
        })

        _require_positive("payment_amount", payment_amount)
        for target in targets:
            _require_currency(payment_amount, target.outstanding_balance)

        if explicit_items is not None:
            plan = self._allocate_explicit(payment_amount, targets, explicit_items)
        else:
            plan = self._allocate_in_order(payment_amount, targets, policy)

        # INVARIANT: every cent is either applied or unallocated
        assert plan.total_allocated + plan.unallocated == payment_amount, (
            f"Allocation conservation violated: {plan.total_allocated} + "
            f"{plan.unallocated} != {payment_amount}"
        )

        logger.info("allocation_completed", extra={
            "payment_amount": str(payment_amount.amount),
            "total_allocated": str(plan.total_allocated.amount),
            "unallocated": str(plan.unallocated.amount),
            "invoices_funded": plan.invoice_count,
            "explicit": plan.is_explicit,
        })
        return plan

    def _allocate_explicit(
        self,
        payment_amount: Money,
        targets: Sequence[OutstandingInvoice],
        explicit_items: Sequence[ExplicitAllocation],
    ) -> AllocationPlan:
        """Validate and apply caller-chosen amounts in input order."""
        by_id = {str(t.invoice_id): t for t in targets}
        seen: set[str] = set()
        items: list[ReceiptItem] = []
        allocated = Money.zero(payment_amount.currency)

        for explicit in explicit_items:
            key = str(explicit.invoice_id)
            if key in seen:
                raise DuplicateAllocationError(key)
            seen.add(key)

            target = by_id.get(key)
            if target is None:
                logger.warning("allocation_unknown_invoice", extra={"invoice_id": key})
                raise UnknownInvoiceError(key)
            if not target.status.is_payable:
                raise InvoiceNotPayableError(key, target.status.value)

            _require_currency(payment_amount, explicit.amount)
            _require_positive(f"amount for invoice {key}", explicit.amount)

            if explicit.amount > target.outstanding_balance:
                logger.warning("allocation_exceeds_outstanding", extra={
                    "invoice_id": key,
                    "requested": str(explicit.amount.amount),
                    "outstanding": str(target.outstanding_balance.amount),
                })
                raise OverAllocationError(
                    f"Invoice {key}: {explicit.amount} exceeds outstanding "
                    f"balance {target.outstanding_balance}",
                    requested=str(explicit.amount.amount),
                    available=str(target.outstanding_balance.amount),
                    invoice_id=key,
                )

            allocated = allocated + explicit.amount
            items.append(_item_for(target, explicit.amount))

        if allocated > payment_amount:
            logger.warning("allocation_exceeds_payment", extra={
                "allocated": str(allocated.amount),
                "payment_amount": str(payment_amount.amount),
            })
            raise OverAllocationError(
                f"Allocated {allocated} exceeds payment {payment_amount}",
                requested=str(allocated.amount),
                available=str(payment_amount.amount),
            )

        return AllocationPlan(
            payment_amount=payment_amount,
            items=tuple(items),
            unallocated=payment_amount - allocated,
            policy=None,
        )

    def _allocate_in_order(
        self,
        payment_amount: Money,
        targets: Sequence[OutstandingInvoice],
        policy: AllocationPolicy,
    ) -> AllocationPlan:
        """
        Greedy settlement in policy order until the payment is exhausted.

        Invoices that cannot take money (nothing outstanding, draft or
        cancelled) are skipped.
        """
        remaining = payment_amount
        items: list[ReceiptItem] = []

        for target in order_targets(targets, policy):
            if remaining.is_zero:
                break
            if not target.status.is_payable or not target.outstanding_balance.is_positive:
                continue

            applied = min(remaining, target.outstanding_balance)
            items.append(_item_for(target, applied))
            remaining = remaining - applied

        return AllocationPlan(
            payment_amount=payment_amount,
            items=tuple(items),
            unallocated=remaining,
            policy=policy,
        )


def _item_for(target: OutstandingInvoice, amount: Money) -> ReceiptItem:
    return ReceiptItem(
        invoice_id=target.invoice_id,
        amount_paid=amount,
        previous_balance=target.outstanding_balance,
        invoice_number=target.invoice_number,
        invoice_total=target.total_amount,
    )


def require_currency_precision(field: str, amount: Money) -> None:
    """Raise InvalidAmountError if ``amount`` is finer than its currency's minor unit."""
    if amount.round() != amount:
        raise InvalidAmountError(
            field,
            str(amount.amount),
            reason=f"must have at most {amount.currency.decimal_places} decimal places",
        )


def _require_positive(field: str, amount: Money) -> None:
    if not amount.is_positive:
        raise InvalidAmountError(field, str(amount.amount))
    require_currency_precision(field, amount)


def _require_currency(expected: Money, actual: Money) -> None:
    if actual.currency != expected.currency:
        raise CurrencyMismatchError(expected.currency.code, actual.currency.code)
