# src/datalayer/tests/test_logging/test_filters.py
import logging

from datalayer.core.logging.filters import (
    OperationIdFilter,
    RedactFilter,
    get_operation_id,
    operation_context,
    reset_operation_id,
    set_operation_id,
)


def make_record():
    # name, level, pathname, lineno, msg, args, exc_info
    return logging.LogRecord("test", logging.INFO, __file__, 1, "hello %s", ("world",), None)


def test_operation_id_filter_defaults_to_dash():
    rec = make_record()
    token = set_operation_id(None)
    try:
        assert OperationIdFilter().filter(rec) is True
    finally:
        reset_operation_id(token)
    assert rec.operation_id == "-"  # fallback sentinel


def test_operation_id_filter_uses_contextvar():
    rec = make_record()
    with operation_context("abc-123"):
        OperationIdFilter().filter(rec)
    assert rec.operation_id == "abc-123"


def test_operation_id_filter_respects_record_extra():
    rec = make_record()
    rec.operation_id = "explicit"
    with operation_context("context-id"):
        OperationIdFilter().filter(rec)
    # explicit extra wins over the context
    assert rec.operation_id == "explicit"


def test_operation_context_generates_and_restores():
    assert get_operation_id() is None
    with operation_context() as op_id:
        assert len(op_id) == 12
        assert get_operation_id() == op_id
        with operation_context("nested"):
            assert get_operation_id() == "nested"
        assert get_operation_id() == op_id
    assert get_operation_id() is None


def test_redact_filter_masks_sensitive_extras():
    rec = make_record()
    rec.password = "hunter2"
    rec.Authorization = "Bearer abc"
    rec.collection = "posts"

    assert RedactFilter().filter(rec) is True

    assert rec.password == RedactFilter.MASK
    assert rec.Authorization == RedactFilter.MASK
    assert rec.collection == "posts"
