"""
Pytest fixtures for the receivables ledger test suite.

Provides:
- Structured logging configured once per session, plus log capture
- Deterministic clock and in-memory ledger store
- SQLite-backed SQLAlchemy sessions for the SQL storage collaborator
- Invoice factory helpers
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from receivables_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from receivables_kernel.domain.clock import DeterministicClock
from receivables_kernel.domain.status import InvoiceStatus
from receivables_kernel.domain.values import Money
from receivables_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from receivables_modules.payments.config import PaymentsConfig
from receivables_modules.payments.models import Invoice
from receivables_modules.payments.store import InMemoryLedgerStore


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture receivables logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.process_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("receivables")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Clock pinned to 2024-01-01 12:00 UTC."""
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def usd_config() -> PaymentsConfig:
    return PaymentsConfig(currency="USD")


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def customer_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_invoice():
    """
    Factory for unpaid USD invoices.

    Usage::

        inv = make_invoice(customer_id, "100.00", due_date=date(2024, 1, 1))
    """

    def _make(
        customer_id: UUID,
        total: str,
        due_date: date,
        invoice_date: date | None = None,
        amount_paid: str = "0",
        status: InvoiceStatus = InvoiceStatus.SENT,
        invoice_number: str | None = None,
        currency: str = "USD",
    ) -> Invoice:
        invoice_id = uuid4()
        return Invoice(
            id=invoice_id,
            customer_id=customer_id,
            invoice_number=invoice_number or f"INV-{str(invoice_id)[:8]}",
            invoice_date=invoice_date or due_date,
            due_date=due_date,
            total_amount=Money.of(Decimal(total), currency),
            amount_paid=Money.of(Decimal(amount_paid), currency),
            status=status,
        )

    return _make


# =============================================================================
# SQLite-backed session for the SQL storage collaborator
# =============================================================================


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh in-memory SQLite database with all receivables tables."""
    init_engine_from_url("sqlite://")
    create_tables()
    db_session = get_session()
    try:
        yield db_session
    finally:
        db_session.close()
        drop_tables()
        reset_engine()
