"""Tests for the structured logging system (disbursement_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from disbursement_kernel.domain.approval import ApprovalStatus
from disbursement_kernel.exceptions import NotCharityOwnerError
from disbursement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite-wide configuration."""
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


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "disbursement_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("signature_added", extra={"current_signatures": 2})

        assert _parse_log(stream)["current_signatures"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", approval_id="apr-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["approval_id"] == "apr-1"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "approval_executed",
            extra={"entity_id": uid, "amount": Decimal("12.50"), "status": ApprovalStatus.EXECUTED},
        )

        record = _parse_log(stream)
        assert record["entity_id"] == str(uid)
        assert record["amount"] == "12.50"
        assert record["status"] == "executed"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NotCharityOwnerError("user-1", "charity-9", "execute transactions")
        except NotCharityOwnerError:
            get_logger("test").error("authorization_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NOT_CHARITY_OWNER"
        assert record["exc_type"] == "NotCharityOwnerError"
        assert record["exc_message"] == "Only the charity owner can execute transactions"
        assert record["exc_charity_id"] == "charity-9"
        assert record["exc_action"] == "execute transactions"

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]

    def test_configure_is_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", charity_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "charity_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        assert "milestone_id" not in LogContext.get_all()
        with LogContext.bind(milestone_id="m-1"):
            assert LogContext.get_all()["milestone_id"] == "m-1"
        assert "milestone_id" not in LogContext.get_all()

    def test_set_rejects_unknown_fields(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="t")

    def test_values_stored_as_strings(self):
        uid = uuid4()
        LogContext.set(approval_id=uid)
        assert LogContext.get_all() == {"approval_id": str(uid)}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(correlation_id="c", tenant="t"):
            assert LogContext.get_all() == {"correlation_id": "c"}
