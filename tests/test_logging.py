"""Tests for the structured logging system (loanbook_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from loanbook_ingestion.domain.types import ImportRunResult
from loanbook_kernel.exceptions import SourceError
from loanbook_kernel.logging_config import (
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
        assert record["logger"] == "loanbook.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("batch_flushed", extra={"written": 42, "failed": 0})

        record = _parse_log(stream)
        assert record["written"] == 42
        assert record["failed"] == 0

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(import_run_id="run-1", branch_id="5235364")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["import_run_id"] == "run-1"
        assert record["branch_id"] == "5235364"

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

    def test_loanbook_exception_code_extracted(self):
        """Loanbook exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from loanbook_kernel.exceptions import RowNormalizationError

        try:
            raise RowNormalizationError(7, "no phone, email or name")
        except RowNormalizationError:
            logger.warning("row_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "ROW_NORMALIZATION_FAILED"
        assert record["exc_type"] == "RowNormalizationError"
        assert record["exc_row_number"] == 7
        assert record["exc_reason"] == "no phone, email or name"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "import_run_id" not in record
        assert "correlation_id" not in record

    def test_uuid_decimal_and_date_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={"run": uid, "balance": Decimal("150.50"), "as_of": date(2024, 2, 1)},
        )

        record = _parse_log(stream)
        assert record["run"] == str(uid)
        assert record["balance"] == "150.50"
        assert record["as_of"] == "2024-02-01"

    def test_partial_result_serialized_as_object(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        partial = ImportRunResult(total_merged=4, total_errors=1, total_rows=5)

        try:
            raise SourceError("branch_5235364.csv", "truncated file", partial)
        except SourceError:
            get_logger("test").error("source_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_partial_result"]["total_merged"] == 4
        assert record["exc_partial_result"]["failures"] == []

    def test_unknown_type_in_extra_is_not_stringified(self):
        record = logging.makeLogRecord({"msg": "opaque", "payload": object()})

        with pytest.raises(TypeError):
            StructuredFormatter().format(record)

    def test_foreign_exception_attributes_not_copied(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        exc = RuntimeError("store gone")
        exc.handle = object()

        try:
            raise exc
        except RuntimeError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "RuntimeError"
        assert "exc_handle" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(import_run_id="x", source_name="y.csv")
        assert LogContext.get_all() == {"import_run_id": "x", "source_name": "y.csv"}

    def test_clear(self):
        LogContext.set(import_run_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(job="outer")
        with LogContext.bind(job="inner"):
            assert LogContext.get_all()["job"] == "inner"
        assert LogContext.get_all()["job"] == "outer"

    def test_bind_restores_none(self):
        assert "import_run_id" not in LogContext.get_all()
        with LogContext.bind(import_run_id="temp"):
            assert LogContext.get_all()["import_run_id"] == "temp"
        assert "import_run_id" not in LogContext.get_all()

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            import_run_id="r",
            source_name="s",
            branch_id="b",
            job="j",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["branch_id"] == "b"


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
        assert len(logging.getLogger("loanbook").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("ingestion.ingestor").name == "loanbook.ingestion.ingestor"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "loanbook.deep.nested.module"
