# src/datalayer/tests/test_logging/test_formatters.py
import json
import logging
import sys

from datalayer.core.logging.formatters import ColorFormatter, JsonFormatter


def make_record():
    # create a LogRecord that simulates formatting with args
    return logging.LogRecord("datalayer", logging.INFO, __file__, 10, "hello %s", ("tester",), None)


def test_json_formatter_basic_fields():
    rec = make_record()
    # attach an extra (simulate extra param)
    rec.collection = "posts"
    rec.operation_id = "op-1"
    fmt = JsonFormatter(env="testing", service="svc")
    data = json.loads(fmt.format(rec))

    assert data["message"] == "hello tester"
    assert data["level"] == "INFO"
    assert data["service"] == "svc"
    assert data["env"] == "testing"
    assert "timestamp" in data
    assert data["operation_id"] == "op-1"
    assert data["collection"] == "posts"
    assert "version" in data  # PROJECT_VERSION is present
    assert "args" not in data


def test_json_formatter_non_serializable_extra():
    rec = make_record()

    class X:
        def __repr__(self):
            return "<X>"

    rec.obj = X()
    data = json.loads(JsonFormatter(env="dev", service="svc").format(rec))
    # non-serializable obj should be stringified
    assert isinstance(data["obj"], str)


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        rec = logging.LogRecord("datalayer", logging.ERROR, __file__, 10, "failed", (), sys.exc_info())

    data = json.loads(JsonFormatter().format(rec))
    assert "RuntimeError: boom" in data["exc_info"]
    assert data["operation_id"] == "-"


def test_color_formatter_line_shape():
    rec = make_record()
    rec.operation_id = "op-1"
    line = ColorFormatter().format(rec)
    assert "INFO" in line
    assert "op-1" in line
    assert line.endswith("hello tester")
