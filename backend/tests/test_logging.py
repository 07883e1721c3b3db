"""
Structured logging tests: JSON records, request correlation and the
persistence operation decorator.
"""
import json
import logging

import pytest

from services.logging_service import (
    StructuredJSONFormatter, log_operation, log_ai_generation, request_id_var
)


def make_record(msg="hello", **extra):
    record = logging.makeLogRecord({"name": "backlog_pilot.test", "levelno": logging.INFO,
                                    "levelname": "INFO", "msg": msg})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = logging.getLogger("backlog_pilot.test_capture")
    handler = ListHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield logger, handler.records
    logger.removeHandler(handler)


class TestStructuredJSONFormatter:

    def test_extra_fields_are_inlined(self):
        line = StructuredJSONFormatter().format(make_record(operation="save_tasks", rows=3))
        entry = json.loads(line)
        assert entry["msg"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["operation"] == "save_tasks"
        assert entry["rows"] == 3

    def test_unserializable_extra_is_repr(self):
        entry = json.loads(StructuredJSONFormatter().format(make_record(obj=object())))
        assert entry["obj"].startswith("<object object")

    def test_request_id_included_when_set(self):
        token = request_id_var.set("req-42")
        try:
            entry = json.loads(StructuredJSONFormatter().format(make_record()))
        finally:
            request_id_var.reset(token)
        assert entry["request_id"] == "req-42"


class TestLogOperation:

    @pytest.mark.anyio
    async def test_logs_row_count(self, captured):
        logger, records = captured

        @log_operation("save_stories", logger=logger)
        async def save():
            return ["a", "b"]

        assert await save() == ["a", "b"]
        assert records[-1].rows == 2
        assert records[-1].operation == "save_stories"

    @pytest.mark.anyio
    async def test_unmatched_result_is_flagged(self, captured):
        logger, records = captured

        @log_operation("update_status", logger=logger)
        async def update():
            return None

        assert await update() is None
        assert records[-1].matched is False

    @pytest.mark.anyio
    async def test_failure_is_logged_and_reraised(self, captured):
        logger, records = captured

        @log_operation("append_tasks", logger=logger)
        async def explode():
            raise RuntimeError("db gone")

        with pytest.raises(RuntimeError):
            await explode()
        assert records[-1].levelno == logging.ERROR
        assert records[-1].error == "db gone"


def test_failed_generation_logged_as_warning(captured):
    logger, records = captured
    log_ai_generation(None, "tasks", "gpt-4o-mini", duration_ms=12.5,
                      success=False, error="timeout", logger=logger)
    assert records[-1].levelno == logging.WARNING
    assert records[-1].caller == "anonymous"
    assert records[-1].purpose == "tasks"


@pytest.mark.anyio
async def test_request_id_echoed(client):
    response = await client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
