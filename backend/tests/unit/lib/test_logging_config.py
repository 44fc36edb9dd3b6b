"""Unit tests for structured logging configuration."""

import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

from prompt_resolution.lib.context import set_current_project_id, set_current_prompt_name
from prompt_resolution.lib.logging_config import (
    ContextFilter,
    JsonFormatter,
    SimpleFormatter,
    configure_logging,
)


def _record(msg="Resolved %d versions", args=(3,), level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="prompt_resolution.test",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestContextFilter:
    def test_injects_context_variables(self):
        set_current_project_id("proj-1")
        set_current_prompt_name("greeting")
        record = _record()

        assert ContextFilter().filter(record) is True

        assert record.project_id == "proj-1"
        assert record.prompt_name == "greeting"
        assert record.request_id is None

    def test_explicit_extra_wins(self):
        set_current_project_id("proj-1")
        record = _record(project_id="proj-override")

        ContextFilter().filter(record)

        assert record.project_id == "proj-override"


class TestJsonFormatter:
    def test_formats_single_line_json(self):
        record = _record(error_code="PROMPT_CYCLE_001", version=3)
        ContextFilter().filter(record)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["message"] == "Resolved 3 versions"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "prompt_resolution.test"
        assert entry["error_code"] == "PROMPT_CYCLE_001"
        assert entry["version"] == 3
        assert "args" not in entry

    def test_non_serializable_extra_is_stringified(self):
        record = _record(payload=object())

        entry = json.loads(JsonFormatter().format(record))

        assert entry["payload"].startswith("<object object")

    def test_includes_traceback(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record(msg="failed", args=())
            record.exc_info = sys.exc_info()

        entry = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad" in entry["exc_info"]


class TestSimpleFormatter:
    def test_appends_context(self):
        record = _record(project_id="proj-1", prompt_name="greeting", request_id=None)

        line = SimpleFormatter().format(record)

        assert "INFO" in line
        assert "Resolved 3 versions" in line
        assert "[project_id=proj-1, prompt_name=greeting]" in line


def test_configure_logging_installs_one_handler(restore_root_logger):
    with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG", "LOG_FORMAT": "simple"}):
        configure_logging()

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, SimpleFormatter)
    assert any(isinstance(f, ContextFilter) for f in root.handlers[0].filters)
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
