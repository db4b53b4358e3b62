r"""
# =================================================================================================================
# Error Classifier
# =================================================================================================================

Remote failures arrive in many shapes:

    - a StoreError returned in a StoreResult (the adapter never raises for store failures)
    - a raw exception (asyncio.TimeoutError, OSError, a driver exception, ...)
    - a plain mapping decoded from somewhere else ({"code": "...", "message": "..."})

`classify_error()` reduces all of them to one short, stable code:

| Code               | Meaning                                            |
| ------------------ | -------------------------------------------------- |
| `connection_error` | the store could not be reached                     |
| `timeout`          | the call was aborted or took too long              |
| `server_error`     | the store answered with a 5xx-style status         |
| `rate_limit`       | the store answered 429                             |
| `connection_limit` | the store refused more connections                 |
| `unknown_error`    | nothing matched                                    |

An explicit `code` on the error always wins and is returned verbatim (e.g. a SQLSTATE
like "40001"), so a RetryPolicy may list vendor codes next to the canonical ones.
SQLAlchemy exceptions are unwrapped to their driver exception first: their own class-level
`code` is a documentation key ("e3q8"), not an error code.

Connection-class SQLSTATEs are folded into canonical codes by `sqlstate_error_code()`
when the store adapter builds a StoreError (08xxx and 57P01-57P03 -> connection_error,
53300 -> connection_limit, 57014 -> timeout); the raw SQLSTATE stays on `StoreError.sqlstate`.

The classifier never decides whether a code is retryable. That is plain membership in
`RetryPolicy.retryable_error_codes`, see `is_retryable()`.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

if TYPE_CHECKING:
    from ..core.retry import RetryPolicy


class ErrorCode(str, Enum):
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMIT = "rate_limit"
    CONNECTION_LIMIT = "connection_limit"
    UNKNOWN_ERROR = "unknown_error"


# Exception / error names that mean "could not reach the store"
CONNECTION_ERROR_NAMES = frozenset({
    "FetchError",
    "ConnectionError",
    "ConnectionRefusedError",
    "ConnectionResetError",
    "ConnectionAbortedError",
    "BrokenPipeError",
    "gaierror",
    "InterfaceError",
    "ConnectionDoesNotExistError",
    "CannotConnectNowError",
})

# Names that mean "aborted or timed out"
TIMEOUT_NAMES = frozenset({
    "AbortError",
    "TimeoutError",
    "CancelledError",
    "QueryCanceledError",
})

# SQLSTATEs (PostgreSQL errcodes appendix) that mean the connection itself failed
CONNECTION_FAILURE_SQLSTATES = frozenset({"57P01", "57P02", "57P03"})
TOO_MANY_CONNECTIONS_SQLSTATE = "53300"
QUERY_CANCELED_SQLSTATE = "57014"


# =================================================================================================================
# Field extraction
# =================================================================================================================

def _field(error: Any, name: str) -> Any:
    """Read `name` from a mapping key or an attribute, whichever the error has."""
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _unwrap(error: Any) -> Any:
    # SQLAlchemy wraps the driver exception; classify what the driver raised
    if isinstance(error, DBAPIError) and error.orig is not None:
        return error.orig
    return error


def _code_text(code: Any) -> str | None:
    if code is None or code == "":
        return None
    if isinstance(code, Enum):
        return str(code.value)
    return str(code)


def _explicit_code(error: Any) -> str | None:
    if isinstance(error, SQLAlchemyError):
        return None
    return _code_text(_field(error, "code"))


def _error_name(error: Any) -> str | None:
    name = _field(error, "name")
    if isinstance(name, str) and name:
        return name
    if isinstance(error, BaseException):
        return type(error).__name__
    return None


def _error_message(error: Any) -> str | None:
    message = _field(error, "message")
    if isinstance(message, str):
        return message
    if isinstance(error, BaseException):
        return str(error)
    return None


def _error_status(error: Any) -> int | None:
    for attr in ("status", "status_code"):
        value = _field(error, attr)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


# =================================================================================================================
# Classification
# =================================================================================================================

def _classify_by_name(name: str | None) -> str | None:
    if not name:
        return None
    if name in CONNECTION_ERROR_NAMES:
        return ErrorCode.CONNECTION_ERROR.value
    if name in TIMEOUT_NAMES:
        return ErrorCode.TIMEOUT.value
    return None


def _classify_by_message(message: str | None) -> str | None:
    if not message:
        return None
    normalized = message.lower()

    if "timeout" in normalized or "timed out" in normalized:
        return ErrorCode.TIMEOUT.value
    # checked before the generic "connection" match, which would shadow it
    if "too many connections" in normalized:
        return ErrorCode.CONNECTION_LIMIT.value
    if "connection" in normalized:
        return ErrorCode.CONNECTION_ERROR.value
    return None


def _classify_by_status(status: int | None) -> str | None:
    if status is None:
        return None
    if status >= 500:
        return ErrorCode.SERVER_ERROR.value
    if status == 429:
        return ErrorCode.RATE_LIMIT.value
    if status == 408:
        return ErrorCode.TIMEOUT.value
    return None


def classify_error(error: Any) -> str:
    """
    Map a raw error of unknown shape to a stable error code.

    Priority:
        1. explicit `code` field (returned verbatim)
        2. error name (exception class name or `name` field)
        3. message substrings
        4. numeric status
        5. "unknown_error"

    Never raises.
    """
    if error is None:
        return ErrorCode.UNKNOWN_ERROR.value

    error = _unwrap(error)
    code = _explicit_code(error)
    if code is not None:
        return code

    for result in (
        _classify_by_name(_error_name(error)),
        _classify_by_message(_error_message(error)),
        _classify_by_status(_error_status(error)),
    ):
        if result is not None:
            return result

    return ErrorCode.UNKNOWN_ERROR.value


def is_retryable(code: str, policy: "RetryPolicy") -> bool:
    """True when `code` is listed in the policy's retryable_error_codes."""
    return code in policy.retryable_error_codes


def error_details(error: Any) -> dict:
    """
    Extract loggable fields (message, code, sqlstate, details, hint) from an error.
    Missing fields are omitted.
    """
    error = _unwrap(error)
    details = {
        "message": _error_message(error),
        "code": _explicit_code(error),
        "sqlstate": _field(error, "sqlstate"),
        "details": _field(error, "details"),
        "hint": _field(error, "hint"),
    }
    return {k: v for k, v in details.items() if v not in (None, "")}


def sqlstate_error_code(sqlstate: str | None) -> str | None:
    """
    Canonical code for a SQLSTATE that signals a transient connection problem,
    or None when the SQLSTATE should be reported as-is.
    """
    if not sqlstate:
        return None
    if sqlstate.startswith("08") or sqlstate in CONNECTION_FAILURE_SQLSTATES:
        return ErrorCode.CONNECTION_ERROR.value
    if sqlstate == TOO_MANY_CONNECTIONS_SQLSTATE:
        return ErrorCode.CONNECTION_LIMIT.value
    if sqlstate == QUERY_CANCELED_SQLSTATE:
        return ErrorCode.TIMEOUT.value
    return None
