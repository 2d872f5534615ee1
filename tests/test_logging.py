"""Tests for the structured logging system (incentive_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from enum import Enum
from io import StringIO
from uuid import uuid4

import pytest

from incentive_kernel.logging_config import (
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "incentive_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("payout_run_completed", extra={"employee_count": 12, "status": "review"})

        record = _parse_log(stream)
        assert record["employee_count"] == 12
        assert record["status"] == "review"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(run_id="run-1", employee_id="emp-7")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["run_id"] == "run-1"
        assert record["employee_id"] == "emp-7"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from incentive_kernel.exceptions import RunLockError

        try:
            raise RunLockError("run-9", "approved")
        except RunLockError:
            logger.error("lock_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "RUN_LOCK_NOT_ACQUIRED"
        assert record["exc_type"] == "RunLockError"
        assert record["exc_run_id"] == "run-9"
        assert record["exc_current_status"] == "approved"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "run_id" not in record
        assert "employee_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_values", extra={"deal_id": uid, "amount_usd": Decimal("1250.50")})

        record = _parse_log(stream)
        assert record["deal_id"] == str(uid)
        assert record["amount_usd"] == "1250.50"

    def test_enum_serialized_by_value(self):
        class Status(Enum):
            REVIEW = "review"

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("run_status", extra={"status": Status.REVIEW})

        assert _parse_log(stream)["status"] == "review"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", run_id="y")
        ctx = LogContext.get_all()
        assert ctx == {"correlation_id": "x", "run_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(employee_id="outer")
        with LogContext.bind(employee_id="inner"):
            assert LogContext.get_all()["employee_id"] == "inner"
        assert LogContext.get_all()["employee_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "settlement_id" not in LogContext.get_all()
        with LogContext.bind(settlement_id="temp"):
            assert LogContext.get_all()["settlement_id"] == "temp"
        assert "settlement_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(run_id="r", shoe_size="9"):
            assert LogContext.get_all() == {"run_id": "r"}

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.set(shoe_size="9")

    def test_uuid_values_stored_as_text(self):
        run_id = uuid4()
        with LogContext.bind(run_id=run_id):
            assert LogContext.get_all() == {"run_id": str(run_id)}

    def test_nested_bind_restores_in_order(self):
        with LogContext.bind(run_id="outer", month_year="2026-02"):
            with LogContext.bind(run_id="inner"):
                assert LogContext.get_all()["run_id"] == "inner"
            assert LogContext.get_all() == {"run_id": "outer", "month_year": "2026-02"}
        assert LogContext.get_all() == {}

    def test_additive_set(self):
        LogContext.set(correlation_id="a")
        LogContext.set(run_id="b")
        ctx = LogContext.get_all()
        assert ctx["correlation_id"] == "a"
        assert ctx["run_id"] == "b"

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            run_id="r",
            employee_id="e",
            month_year="2026-03",
            settlement_id="s",
            actor_id="a",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["month_year"] == "2026-03"
        assert ctx["settlement_id"] == "s"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("incentive_kernel")
        assert h1 in root.handlers
        assert h2 not in root.handlers

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("test").debug("debug_visible")

        assert _parse_log(stream)["message"] == "debug_visible"

    def test_get_logger_returns_child(self):
        logger = get_logger("services.payout_run")
        assert logger.name == "incentive_kernel.services.payout_run"

    def test_logger_hierarchy(self):
        """Child loggers inherit the incentive_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("engines.multiplier.grid")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "incentive_kernel.engines.multiplier.grid"
