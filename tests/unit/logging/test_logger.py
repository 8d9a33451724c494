# tests/unit/logging/test_logger.py — v2
"""Tests for logging/logger.py — logger factory and formatters."""

from __future__ import annotations

import json
import logging

from docmapper.config.settings import Settings
from docmapper.logging.context import clear_context, set_session_context, set_stage_context
from docmapper.logging.logger import (
    ContextFilter,
    JsonFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)


def _record(msg: str = "Hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_session_context(self):
        set_session_context("sess-1", "people.csv")
        set_stage_context("matching", batch_index=3)
        parsed = json.loads(JsonFormatter().format(_record("test msg")))
        assert parsed["context"]["session_id"] == "sess-1"
        assert parsed["context"]["document"] == "people.csv"
        assert parsed["context"]["stage"] == "matching"
        assert parsed["context"]["batch_index"] == 3

    def test_extra_data(self):
        record = _record()
        record.data = {"provider": "fake"}
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["data"] == {"provider": "fake"}


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_stage_and_batch(self):
        set_session_context("abcdef123456", "doc")
        set_stage_context("inferring", batch_index=2)
        output = TextFormatter().format(_record())
        assert "[abcdef12]" in output
        assert "(inferring#2)" in output


class TestGetLogger:
    def test_returns_logger(self):
        logger = get_logger("test_module")
        assert logger.name == "docmapper.test_module"


class TestSetupLogging:
    def test_setup_json(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger("docmapper")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_text(self):
        setup_logging(level="INFO", log_format="text")
        root = logging.getLogger("docmapper")
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_reinit_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("docmapper").handlers) == 1

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "docmapper.log"
        setup_logging(log_file=str(log_file), rotation="1MB", retention=2)
        root = logging.getLogger("docmapper")
        assert len(root.handlers) == 2
        assert log_file.parent.exists()
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_from_settings(self):
        setup_logging_from_settings(Settings(_env_file=None, log_level="WARNING", log_format="text"))
        root = logging.getLogger("docmapper")
        assert root.level == logging.WARNING


class TestContextFilter:
    def teardown_method(self):
        clear_context()

    def test_stamps_context_at_emit(self):
        set_session_context("s-early", "doc")
        record = _record()
        ContextFilter().filter(record)
        set_session_context("s-late", "doc")
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["context"]["session_id"] == "s-early"
