"""Tests for the structured logging system (receivables_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from receivables_kernel.domain.status import BalanceType
from receivables_kernel.exceptions import OverpaymentError
from receivables_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:
    """One JSON object per record."""

    def test_extra_fields_serialized(self):
        """Decimal, enum and UUID extras become JSON strings."""
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        invoice_id = uuid4()

        get_logger("test").info("payment_applied", extra={
            "amount": Decimal("12.50"),
            "balance_type": BalanceType.CREDIT,
            "invoice_id": invoice_id,
        })

        record = _parse_all_logs(stream)[0]
        assert record["message"] == "payment_applied"
        assert record["logger"] == "receivables.test"
        assert record["amount"] == "12.50"
        assert record["balance_type"] == "CREDIT"
        assert record["invoice_id"] == str(invoice_id)

    def test_exception_code_included(self):
        """Typed exceptions contribute their code and attributes."""
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)

        try:
            raise OverpaymentError("inv-1", "100.00", "90.00", "20.00")
        except OverpaymentError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_code"] == "OVERPAYMENT"
        assert record["exc_invoice_id"] == "inv-1"
        assert "traceback" in record


class TestLogContext:
    """Context fields are attached to every record."""

    def test_bind_adds_and_restores(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        customer_id = uuid4()

        with LogContext.bind(customer_id=customer_id):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = _parse_all_logs(stream)
        assert inside["customer_id"] == str(customer_id)
        assert "customer_id" not in outside

    def test_set_and_clear(self):
        LogContext.set(correlation_id="abc")
        assert LogContext.get_all() == {"correlation_id": "abc"}
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    """configure_logging is idempotent."""

    def test_second_call_is_noop(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("receivables").handlers
        assert first in handlers
        assert second not in handlers
