"""Tests for log formatting and logger setup."""
import json
import logging
import os
os.environ["MOCK_AWS"] = "true"

import pytest

from nat_connector.core.logging import ContextLogger, JsonFormatter, TextFormatter, build_formatter, configure_logging


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = logging.getLogger("nat_connector.tests")
    handler = _Capture()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler
    logger.removeHandler(handler)


def test_context_logger_attaches_non_empty_context(captured):
    log = ContextLogger("nat_connector.tests", subject="nat.create.aws").bind(request_id="req-1", batch_id="")
    log.info("Processing %s", "create")

    record = captured.records[0]
    assert record.getMessage() == "Processing create"
    assert record.context == {"subject": "nat.create.aws", "request_id": "req-1"}


def test_json_formatter_emits_context_fields(captured):
    ContextLogger("nat_connector.tests", subject="nat.delete.aws", request_id="req-2").error("delete failed: %s", "boom")

    line = JsonFormatter().format(captured.records[0])
    data = json.loads(line)
    assert data["level"] == "ERROR"
    assert data["logger"] == "nat_connector.tests"
    assert data["message"] == "delete failed: boom"
    assert data["subject"] == "nat.delete.aws"
    assert data["request_id"] == "req-2"
    assert "exception" not in data


def test_json_formatter_includes_traceback(captured):
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        ContextLogger("nat_connector.tests").exception("Unexpected failure")

    data = json.loads(JsonFormatter().format(captured.records[0]))
    assert "RuntimeError: boom" in data["exception"]


def test_text_formatter_appends_context(captured):
    ContextLogger("nat_connector.tests", subject="nat.update.aws").warning("Rejected invalid event")

    line = build_formatter("text").format(captured.records[0])
    assert line.endswith("| nat_connector.tests | Rejected invalid event [subject=nat.update.aws]")


def test_build_formatter_selects_by_name():
    assert isinstance(build_formatter("JSON"), JsonFormatter)
    assert isinstance(build_formatter("text"), TextFormatter)


@pytest.mark.parametrize("health_port, access_level", [("8080", logging.WARNING), ("0", logging.NOTSET)])
def test_access_log_is_quieted_only_with_health_endpoint(monkeypatch, health_port, access_level):
    monkeypatch.setenv("HEALTH_PORT", health_port)
    monkeypatch.setenv("LOG_FORMAT", "json")
    logging.getLogger("uvicorn.access").setLevel(logging.NOTSET)
    root_handlers = logging.getLogger().handlers[:]
    try:
        configure_logging()
        assert logging.getLogger("uvicorn.access").level == access_level
        assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)
    finally:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in root_handlers:
            root.addHandler(handler)
