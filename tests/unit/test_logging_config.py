"""Tests for structured logging and error payloads."""

import json
import logging

from src.kernel.errors import ErrorCode, NotFoundError, StaleWriteError, StoreFailureError
from src.logging_config import (
    CorrelationIdFilter,
    JsonFormatter,
    bind_correlation_id,
    configure_logging,
    get_correlation_id,
)


def _record(**extra):
    record = logging.LogRecord("src.test", logging.INFO, __file__, 1, "Unlocked %s", ("x",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JSON log output."""

    def test_includes_extra_and_correlation(self):
        record = _record(skill_id="abc", cascade=[1, 2])
        with bind_correlation_id("drill-42"):
            CorrelationIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "Unlocked x"
        assert payload["correlation_id"] == "drill-42"
        assert payload["skill_id"] == "abc"
        assert payload["cascade"] == [1, 2]

    def test_unbound_correlation_omitted(self):
        record = _record()
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
        assert "correlation_id" not in payload
        assert get_correlation_id() is None

    def test_unserializable_extra_stringified(self):
        payload = json.loads(JsonFormatter().format(_record(obj=object())))
        assert payload["obj"].startswith("<object object")


class TestErrors:
    """Tests for the error taxonomy."""

    def test_not_found_payload(self):
        error = NotFoundError("Skill", "s-1")
        assert error.to_dict() == {
            "code": "not_found",
            "message": "Skill s-1 not found",
            "details": {"entity": "Skill", "entity_id": "s-1"},
        }

    def test_stale_write_is_store_failure(self):
        error = StaleWriteError("WeekPlan", "w-1", 3)
        assert isinstance(error, StoreFailureError)
        assert error.code == ErrorCode.STORE_FAILURE


class TestConfigureLogging:
    """Tests for root logger setup."""

    def test_production_uses_json(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        saved_factory = logging.getLogRecordFactory()
        try:
            configure_logging(log_level="WARNING", environment="production")
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)

            configure_logging(environment="development", debug=True)
            assert root.level == logging.DEBUG
            assert not isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            logging.setLogRecordFactory(saved_factory)
