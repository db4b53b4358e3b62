# src/datalayer/core/logging/filters.py
"""
Logging filters

Operation ID filter and helpers for logging.

Every remote call made by a repository gets a short operation id. The id is
stored in a `contextvars.ContextVar` for the duration of the call, so every log
line emitted while the call runs (retry warnings, classifier diagnostics, the
final timing record) can be correlated, even when many calls interleave on the
same event loop.

How it is intended to be used
------------------------------
1. Install the filter into your logging configuration (dictConfig):

     "filters": {
         "operation_id": {"()": OperationIdFilter}
     },
     "handlers": {
         "console": {"class": "logging.StreamHandler", "filters": ["operation_id"], ...}
     }

2. Bind an id around a unit of work:

     with operation_context() as op_id:
         ...  # every record logged here carries record.operation_id == op_id

   or, at a lower level, `token = set_operation_id(op_id)` / `reset_operation_id(token)`.

3. Formatters may then reference `%(operation_id)s` safely: the filter sets the
   sentinel "-" when no id is bound.

Security
--------
RedactFilter masks record attributes whose names look sensitive (passwords,
credentials, tokens, authorization headers) before any handler formats them.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from logging import LogRecord
from typing import Iterator

# Default is None to indicate "no operation in progress".
_operation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation_id", default=None
)


def new_operation_id() -> str:
    """Short random id (12 hex chars)."""
    return uuid.uuid4().hex[:12]


def set_operation_id(operation_id: str | None):
    """
    Set the operation id in the current context and return the token to allow reset.

    Returns:
        token: contextvar.Token which can be passed to reset_operation_id(token)
    """
    return _operation_id_ctx.set(operation_id)


def reset_operation_id(token) -> None:
    """
    Reset the contextvar to the previously saved token returned by set_operation_id().
    """
    _operation_id_ctx.reset(token)


def get_operation_id() -> str | None:
    """
    Retrieve the current context's operation id, or None if none is bound.
    """
    return _operation_id_ctx.get()


@contextmanager
def operation_context(operation_id: str | None = None) -> Iterator[str]:
    """
    Bind an operation id (generated when not given) for the duration of the block.
    """
    op_id = operation_id or new_operation_id()
    token = set_operation_id(op_id)
    try:
        yield op_id
    finally:
        reset_operation_id(token)


class OperationIdFilter(logging.Filter):
    """
    Logging filter that guarantees every LogRecord has an `operation_id` attribute.

    Precedence:
      - record.operation_id (explicitly passed via extra={...})
      - the contextvar value bound by operation_context()
      - the sentinel "-"
    """

    def filter(self, record: LogRecord) -> bool:
        record.operation_id = (
            getattr(record, "operation_id", None) or get_operation_id() or "-"
        )
        return True


# Redact sensitive information
class RedactFilter(logging.Filter):
    SENSITIVE = {
        "password", "secret", "token", "access_token", "refresh_token",
        "authorization", "credential", "apikey", "api_key", "service_role_key",
    }
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True
