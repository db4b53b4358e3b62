import asyncio

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from datalayer.core.retry import RetryPolicy
from datalayer.database.store import StoreError
from datalayer.exceptions.classifier import (
    ErrorCode,
    classify_error,
    error_details,
    is_retryable,
    sqlstate_error_code,
)


class TestClassifyError:

    def test_explicit_code_wins_over_everything(self):
        error = StoreError(message="connection timeout", code="PGRST301", status=503, name="FetchError")
        assert classify_error(error) == "PGRST301"

    @pytest.mark.parametrize("name", ["FetchError", "ConnectionRefusedError", "ConnectionError"])
    def test_network_names_map_to_connection_error(self, name):
        assert classify_error({"name": name, "message": "whatever"}) == "connection_error"

    @pytest.mark.parametrize("name", ["AbortError", "TimeoutError", "CancelledError"])
    def test_abort_names_map_to_timeout(self, name):
        assert classify_error({"name": name}) == "timeout"

    def test_name_beats_message(self):
        assert classify_error({"name": "AbortError", "message": "connection dropped"}) == "timeout"

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("statement timeout", "timeout"),
            ("Connection refused", "connection_error"),
            ("sorry, too many connections for role app", "connection_limit"),
            ("permission denied", "unknown_error"),
        ],
    )
    def test_message_heuristics(self, message, expected):
        assert classify_error(StoreError(message=message)) == expected

    @pytest.mark.parametrize(
        "status, expected",
        [(500, "server_error"), (503, "server_error"), (429, "rate_limit"), (408, "timeout"), (404, "unknown_error")],
    )
    def test_status_ranges(self, status, expected):
        assert classify_error({"message": "failed", "status": status}) == expected

    def test_exceptions_are_classified_by_type_name(self):
        assert classify_error(ConnectionRefusedError(111, "refused")) == "connection_error"
        assert classify_error(asyncio.TimeoutError()) == "timeout"

    def test_arbitrary_objects(self):
        class Weird:
            status = 502

        assert classify_error(Weird()) == "server_error"
        assert classify_error(None) == "unknown_error"
        assert classify_error(42) == "unknown_error"

    def test_sqlalchemy_wrapper_is_unwrapped_to_the_driver_error(self):
        # the wrapper's own `code` is a documentation key, never an error code
        wrapped = OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))
        assert classify_error(wrapped) == "connection_error"

    def test_driver_error_code_survives_unwrapping(self):
        class DriverError(Exception):
            code = "40001"

        assert classify_error(OperationalError("SELECT 1", {}, DriverError("conflict"))) == "40001"

    def test_non_dbapi_sqlalchemy_error_falls_back_to_message(self):
        assert classify_error(SQLAlchemyError("pool timed out")) == "timeout"

    def test_error_code_members_are_returned_as_plain_strings(self):
        assert classify_error({"code": ErrorCode.RATE_LIMIT}) == "rate_limit"


def test_is_retryable_is_plain_membership():
    policy = RetryPolicy(retryable_error_codes={"timeout"})
    assert is_retryable("timeout", policy)
    assert not is_retryable("connection_error", policy)


def test_error_details_omits_missing_fields():
    details = error_details(StoreError(message="boom", code="23505", details="Key (id)=(1) already exists."))
    assert details == {"message": "boom", "code": "23505", "details": "Key (id)=(1) already exists."}


def test_error_details_of_wrapped_driver_error():
    class DriverError(Exception):
        sqlstate = "08006"

    details = error_details(OperationalError("SELECT 1", {}, DriverError("terminating connection")))
    assert details == {"message": "terminating connection", "sqlstate": "08006"}


@pytest.mark.parametrize(
    "sqlstate, expected",
    [
        ("08006", "connection_error"),
        ("08003", "connection_error"),
        ("57P01", "connection_error"),
        ("57P03", "connection_error"),
        ("53300", "connection_limit"),
        ("57014", "timeout"),
        ("40001", None),
        ("42P01", None),
        (None, None),
    ],
)
def test_sqlstate_error_code(sqlstate, expected):
    assert sqlstate_error_code(sqlstate) == expected
