"""
JSON log output and request context (stock_kernel/logging_config.py).

Each test installs its own handler; the suite-wide DEBUG configuration is
restored afterwards.
"""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clear_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def log_stream():
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _records

    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestRecordShape:
    def test_base_fields_and_extras(self, log_stream):
        batch_id = uuid4()

        get_logger("services.batch_store").info(
            "batch_created", extra={"batch_id": batch_id, "quantity": Decimal("2.5")}
        )

        record = log_stream()[0]
        assert record["level"] == "INFO"
        assert record["logger"] == "stock_kernel.services.batch_store"
        assert record["message"] == "batch_created"
        assert record["batch_id"] == str(batch_id)
        assert record["quantity"] == "2.5"
        assert "ts" in record

    def test_context_merged(self, log_stream):
        with LogContext.bind(operation="sell", actor_id="clerk-001"):
            get_logger("test").info("stock_deducted")
        get_logger("test").info("after")

        inside, after = log_stream()
        assert inside["operation"] == "sell"
        assert inside["actor_id"] == "clerk-001"
        assert "operation" not in after

    def test_kernel_exception_fields(self, log_stream):
        try:
            raise InsufficientStockError(
                product_id="p-1", requested=Decimal("7"), available=Decimal("5")
            )
        except InsufficientStockError:
            get_logger("test").warning("sale_rejected", exc_info=True)

        record = log_stream()[0]
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_product_id"] == "p-1"
        assert "traceback" in record

    def test_default_level_drops_debug(self, log_stream):
        get_logger("test").debug("noise")
        get_logger("test").info("signal")

        assert [r["message"] for r in log_stream()] == ["signal"]


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")

        with LogContext.bind(correlation_id="inner", return_id="r-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "return_id": "r-1"}

        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_ignores_none_and_unknown_fields(self):
        with LogContext.bind(actor_id=None, shelf="B2", operation="submit_return"):
            assert LogContext.get_all() == {"operation": "submit_return"}

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.set(shelf="B2")

    def test_values_are_strings(self):
        product_id = uuid4()

        with LogContext.bind(product_id=product_id):
            assert LogContext.get_all()["product_id"] == str(product_id)

    def test_snapshot_rebinds_on_worker_thread(self):
        seen = {}
        LogContext.set(actor_id="clerk-001", operation="submit_return")
        snapshot = LogContext.get_all()

        def worker():
            with LogContext.bind(**snapshot):
                seen.update(LogContext.get_all())

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == {"actor_id": "clerk-001", "operation": "submit_return"}


class TestConfigureLogging:
    def test_second_call_is_ignored(self, log_stream):
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert len(logging.getLogger("stock_kernel").handlers) == 1

    def test_level_name_from_settings(self):
        reset_logging()
        try:
            configure_logging(level="warning", stream=StringIO())
            assert logging.getLogger("stock_kernel").level == logging.WARNING
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
