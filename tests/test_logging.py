"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.domain.payment_method import PaymentMethod
from ledger_kernel.exceptions import LedgerWriteConflictError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        payment_id = uuid4()
        get_logger("test").info(
            "payment_recorded",
            extra={
                "payment_id": payment_id,
                "amount": Decimal("1500.00"),
                "method": PaymentMethod.UPI,
                "line_count": 2,
            },
        )

        record = _parse_log(stream)
        assert record["payment_id"] == str(payment_id)
        assert record["amount"] == "1500.00"
        assert record["method"] == "upi"
        assert record["line_count"] == 2

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise LedgerWriteConflictError("Invoice", "inv-1", "pending amount changed")
        except LedgerWriteConflictError:
            get_logger("test").error("write_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "LedgerWriteConflictError"
        assert record["exc_code"] == "LEDGER_WRITE_CONFLICT"
        assert record["exc_entity_type"] == "Invoice"
        assert record["exc_entity_id"] == "inv-1"
        assert record["exc_reason"] == "pending amount changed"
        assert "traceback" in record

    def test_plain_exception_has_no_code(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", party_id="party-9")
        get_logger("test").info("with_context")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["party_id"] == "party-9"
        assert "payment_id" not in record

    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")
        payment_id = uuid4()
        with LogContext.bind(correlation_id="inner", payment_id=payment_id):
            assert LogContext.get_all() == {
                "correlation_id": "inner",
                "payment_id": str(payment_id),
            }
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(document_id="doc-1", not_a_field="x"):
            assert LogContext.get_all() == {"document_id": "doc-1"}

    def test_clear(self):
        LogContext.set(company_id="c-1", user_id="u-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").warning("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_filters_records(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="debug", handler=handler)
        get_logger("test").debug("visible")
        assert _parse_log(stream)["message"] == "visible"


class TestContextFieldNames:

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError, match="Unknown log context field"):
            LogContext.set(entry_id="x")

    def test_set_stringifies_values(self):
        party_id = uuid4()
        LogContext.set(party_id=party_id)
        assert LogContext.get_all() == {"party_id": str(party_id)}
