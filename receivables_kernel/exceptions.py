"""
Typed Exception Hierarchy for the Receivables Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure of the allocation, balance and tax operations is part of the
contract, not a UI side effect. Callers catch by type, read a stable ``code``
and get structured attributes instead of parsing messages:

    try:
        ledger.apply_payment(customer_id, plan, payment_id=payment_id)
    except StaleStateError as e:
        # Reload invoices and retry with fresh state
        ...
    except ValidationError as e:
        return {"error": e.code, "message": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReceivablesError (base)
    |
    +-- ValidationError                 caller-correctable, never retried
    |   +-- InvalidAmountError
    |   +-- UnknownInvoiceError
    |   +-- OverAllocationError
    |   +-- DuplicateAllocationError
    |   +-- InvoiceNotPayableError
    |   +-- PercentageOutOfRangeError
    |   +-- CurrencyMismatchError
    |
    +-- OverpaymentError                contract violation, aborts operation
    |
    +-- InvalidStateError               contract violation, aborts operation
    |   +-- ReceiptNotFoundError
    |   +-- ReceiptAlreadyReversedError
    |
    +-- StaleStateError                 concurrency conflict, caller retries
    |
    +-- PersistenceError                opaque storage failure on commit

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|---------------------------------------
Validation   | INVALID_AMOUNT            | Negative/zero amount where positive needed
             | UNKNOWN_INVOICE           | Explicit item names an invoice not in targets
             | OVER_ALLOCATION           | Item > outstanding, or items > payment
             | DUPLICATE_ALLOCATION      | Same invoice listed twice
             | INVOICE_NOT_PAYABLE       | Draft or cancelled invoice
             | PERCENTAGE_OUT_OF_RANGE   | Tax/discount percentage outside [0, 100]
             | CURRENCY_MISMATCH         | Mixed currencies in one operation
-------------|---------------------------|---------------------------------------
Ledger       | OVERPAYMENT               | amount_paid would exceed invoice total
             | INVALID_STATE             | Reversal cannot be applied exactly
             | RECEIPT_NOT_FOUND         | Reversing a payment that was never applied
             | RECEIPT_ALREADY_REVERSED  | Double reversal
-------------|---------------------------|---------------------------------------
Concurrency  | STALE_STATE               | Version mismatch on account or invoice
-------------|---------------------------|---------------------------------------
Storage      | PERSISTENCE_ERROR         | Storage layer failed during commit

All errors are deterministic given the same inputs; none originates from
transient I/O except PersistenceError, which wraps the storage failure
(available as ``__cause__``).
"""


class ReceivablesError(Exception):
    """
    Base exception for all receivables ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "RECEIVABLES_ERROR"


# Validation exceptions


class ValidationError(ReceivablesError):
    """Bad input shape or values. Always caller-correctable."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """An amount is negative, or zero where a positive amount is required."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: str, reason: str = "must be positive"):
        self.field = field
        self.amount = amount
        super().__init__(f"{field} {reason}, got {amount}")


class UnknownInvoiceError(ValidationError):
    """An explicit allocation references an invoice that is not outstanding."""

    code: str = "UNKNOWN_INVOICE"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} is not among the customer's outstanding invoices")


class OverAllocationError(ValidationError):
    """More money allocated than is owed, or than was received."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, message: str, requested: str, available: str, invoice_id: str | None = None):
        self.requested = requested
        self.available = available
        self.invoice_id = invoice_id
        super().__init__(message)


class DuplicateAllocationError(ValidationError):
    """The same invoice appears more than once in an explicit allocation."""

    code: str = "DUPLICATE_ALLOCATION"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} appears more than once in the allocation")


class InvoiceNotPayableError(ValidationError):
    """Draft and cancelled invoices cannot receive payments."""

    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} cannot receive payments in status {status}")


class PercentageOutOfRangeError(ValidationError):
    """A tax or discount percentage outside [0, 100]."""

    code: str = "PERCENTAGE_OUT_OF_RANGE"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be between 0 and 100, got {value}")


class CurrencyMismatchError(ValidationError):
    """Amounts in different currencies combined in one operation."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: expected {expected}, got {actual}")


# Ledger contract violations


class OverpaymentError(ReceivablesError):
    """Applying a payment would push an invoice's amount_paid past its total."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: str, total_amount: str, amount_paid: str, applied: str):
        self.invoice_id = invoice_id
        self.total_amount = total_amount
        self.amount_paid = amount_paid
        self.applied = applied
        super().__init__(
            f"Invoice {invoice_id}: applying {applied} to {amount_paid} paid "
            f"exceeds total {total_amount}"
        )


class InvalidStateError(ReceivablesError):
    """The ledger is not in a state where the operation can be applied exactly."""

    code: str = "INVALID_STATE"


class ReceiptNotFoundError(InvalidStateError):
    """Reversing a payment that was never applied."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} was never applied")


class ReceiptAlreadyReversedError(InvalidStateError):
    """Reversing a payment twice."""

    code: str = "RECEIPT_ALREADY_REVERSED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} has already been reversed")


# Concurrency


class StaleStateError(ReceivablesError):
    """
    The caller's snapshot is out of date.

    Expected to be retried by the caller with fresh invoice state; the
    ledger itself never retries.
    """

    code: str = "STALE_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale {entity_type} {entity_id}: expected version "
            f"{expected_version}, found {actual_version}"
        )


# Storage


class PersistenceError(ReceivablesError):
    """Opaque storage failure during commit. No partial mutation is visible."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        super().__init__(
            f"Storage failure during {operation}" + (f": {detail}" if detail else "")
        )
