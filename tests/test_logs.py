import json
import logging
import sys

import pytest

from kvjobs.logs import JSONFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _record(msg: str, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord("kvjobs.core.processor", logging.ERROR, __file__, 1, msg, (), exc_info)


def test_json_formatter_emits_one_object():
    line = JSONFormatter().format(_record("job %s failed" % "job_1"))
    data = json.loads(line)
    assert data["level"] == "ERROR"
    assert data["logger"] == "kvjobs.core.processor"
    assert data["message"] == "job job_1 failed"
    assert "exception" not in data


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record("failed", sys.exc_info())
    data = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in data["exception"]


def test_setup_logging_replaces_root_handlers(restore_root_logger):
    root = restore_root_logger
    root.addHandler(logging.NullHandler())

    setup_logging("debug", json_format=True)

    [handler] = root.handlers
    assert isinstance(handler.formatter, JSONFormatter)
    assert root.level == logging.DEBUG


def test_unknown_level_falls_back_to_info(restore_root_logger):
    setup_logging("chatty")
    assert restore_root_logger.level == logging.INFO
