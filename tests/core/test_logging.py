"""Tests for tablespine.core.logging."""

import pytest
import structlog

from tablespine.core import logging as ts_logging
from tablespine.core.logging import LogContext, configure_logging, get_logger


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    ts_logging._SERVICE_NAME = "tablespine"


class TestProcessors:
    def test_service_metadata(self, reset_structlog):
        configure_logging(level="DEBUG", json_format=True, service="orders-api")
        event = ts_logging._add_service_metadata(None, "info", {"event": "x"})
        assert event["service.name"] == "orders-api"

    def test_elasticsearch_field_names(self):
        event = ts_logging._elasticsearch_compatible(
            None, "info", {"event": "x", "timestamp": "t", "level": "info"}
        )
        assert event == {"event": "x", "@timestamp": "t", "log.level": "info"}


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(operation="delete", entity="Customer"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["operation"] == "delete"
            assert bound["entity"] == "Customer"
        assert "operation" not in structlog.contextvars.get_contextvars()

    def test_nested_scope_restores_outer_values(self):
        with LogContext(operation="delete", entity="Customer"):
            with LogContext(operation="query"):
                assert structlog.contextvars.get_contextvars()["operation"] == "query"
                assert structlog.contextvars.get_contextvars()["entity"] == "Customer"
            assert structlog.contextvars.get_contextvars()["operation"] == "delete"
        assert "entity" not in structlog.contextvars.get_contextvars()

    def test_unbinds_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext(operation="create"):
                raise RuntimeError("boom")
        assert "operation" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_async_context(self):
        async with LogContext(request_id="r-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "r-1"
        assert "request_id" not in structlog.contextvars.get_contextvars()


def test_get_logger_emits_events():
    logger = get_logger("tablespine.tests")
    with structlog.testing.capture_logs() as logs:
        logger.info("transaction.execute", actions=3)
    assert logs == [{"event": "transaction.execute", "actions": 3, "log_level": "info"}]
