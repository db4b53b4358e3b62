import logging
from contextlib import contextmanager
from typing import Any, Iterator, NoReturn

from .base import DatabaseError, NotFoundError, RepositoryError, ValidationError
from .classifier import classify_error, error_details
from ..core.retry import RetryExhaustedError

logger = logging.getLogger(__name__)

# -----------------------
# Mapper
# -----------------------


def _describe(error: Any) -> str:
    # exhaustion/remote errors carry the raw store error; prefer its message
    raw = getattr(error, "error", None)
    if raw is not None:
        message = error_details(raw).get("message")
        if message:
            return message
    return error_details(error).get("message") or type(error).__name__


def to_repository_error(operation: str, error: BaseException, *, collection: str | None = None) -> RepositoryError:
    """
    Map any failure raised inside a repository operation to a taxonomy member
    and log it with structured context.

    - ValidationError / NotFoundError / DatabaseError are returned unchanged
    - retry exhaustion becomes DatabaseError carrying attempt_count and last_error_code
    - anything else becomes DatabaseError with the original error as cause
    """
    target = f"{collection}.{operation}" if collection else operation

    if isinstance(error, (ValidationError, NotFoundError)):
        # expected client-level outcomes: no stack trace
        logger.info(
            "mapper.client_error",
            extra={"operation": target, "error_code": error.error_code, "detail": error.message},
        )
        return error

    if isinstance(error, RepositoryError):
        logger.error(
            "mapper.repository_error",
            extra={"operation": target, "error_code": error.error_code, "detail": error.message},
        )
        return error

    raw = getattr(error, "error", None)
    details = error_details(raw if raw is not None else error)
    code = getattr(error, "error_code", None) or classify_error(raw if raw is not None else error)
    logger.error(
        "mapper.remote_failure",
        extra={
            "operation": target,
            "error_code": code,
            "detail": details.get("message"),
            "vendor_details": details.get("details") or details.get("hint"),
            "sqlstate": details.get("sqlstate"),
            "error_type": type(error).__name__,
        },
    )

    if isinstance(error, RetryExhaustedError):
        return DatabaseError(
            f"Error in {target} after {error.attempt_count} attempts: {_describe(error)}",
            cause=error,
            attempt_count=error.attempt_count,
            last_error_code=error.last_error_code,
        )

    return DatabaseError(f"Error in {target}: {_describe(error)}", cause=error)


def handle_error(operation: str, error: BaseException, *, collection: str | None = None) -> NoReturn:
    """
    Raise the taxonomy member for `error`. Taxonomy errors are re-raised as-is;
    anything else is raised as DatabaseError chained to the original.
    """
    mapped = to_repository_error(operation, error, collection=collection)
    if mapped is error:
        raise error
    raise mapped from error


# -----------------------
# Context manager to DRY error handling in repositories
# -----------------------
@contextmanager
def repository_error_handler(operation: str, *, collection: str | None = None) -> Iterator[None]:
    """
    Usage:
        with repository_error_handler("get_by_id", collection=self.collection):
            ... validation + remote calls ...
    Every exception leaving the block is a RepositoryError.
    """
    try:
        yield
    except Exception as exc:
        handle_error(operation, exc, collection=collection)
