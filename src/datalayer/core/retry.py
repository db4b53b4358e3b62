"""
Retry executor with exponential backoff.

Wraps any async operation whose result reports failure through an `error`
attribute (the StoreResult convention) rather than by raising:

    result = await execute_with_retry(lambda: store.execute(query), policy)

On each failed attempt the error is classified (see exceptions.classifier).
Codes listed in `policy.retryable_error_codes` are retried after a delay of

    min(initial_delay_ms * backoff_factor ** attempt_index, max_delay_ms)

with attempt_index starting at 0. Any other code fails fast.

Notes:
    - total attempts = max_retries + 1
    - exceptions raised by the operation itself propagate untouched and are never retried
    - every call owns its attempt counter; nothing is shared between calls
    - the sleep function is injectable (tests pass a recorder instead of asyncio.sleep)
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..exceptions.classifier import ErrorCode, classify_error, error_details, is_retryable

logger = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_RETRYABLE_ERROR_CODES = frozenset({
    ErrorCode.CONNECTION_ERROR.value,
    ErrorCode.TIMEOUT.value,
    ErrorCode.SERVER_ERROR.value,
})


class RetryPolicy(BaseModel):
    """
    Immutable retry configuration.

    Args:
        max_retries: retries after the first attempt (0 = single attempt)
        initial_delay_ms: delay before the first retry
        max_delay_ms: upper bound for any single delay
        backoff_factor: multiplier applied per attempt (> 1)
        retryable_error_codes: classified codes that trigger a retry
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: int = Field(default=100, gt=0)
    max_delay_ms: int = Field(default=3000, gt=0)
    backoff_factor: float = Field(default=2.0, gt=1)
    retryable_error_codes: frozenset[str] = DEFAULT_RETRYABLE_ERROR_CODES

    @field_validator("retryable_error_codes", mode="before")
    @classmethod
    def coerce_codes(cls, v):
        if isinstance(v, str):
            v = [v]
        # ErrorCode members: str() would render "ErrorCode.TIMEOUT"
        return frozenset(code.value if isinstance(code, Enum) else str(code) for code in v)

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "RetryPolicy":
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        return self


# =================================================================================================================
# Errors
# =================================================================================================================

class RemoteOperationError(Exception):
    """
    A remote operation failed with a non-retryable error code.

    Carries the classified `error_code` and the raw `error` from the result.
    """

    def __init__(self, message: str, *, error_code: str, error: Any = None, attempt_count: int = 1):
        super().__init__(message)
        self.error_code = error_code
        self.error = error
        self.attempt_count = attempt_count


class RetryExhaustedError(RemoteOperationError):
    """Every allowed attempt failed with a retryable error code."""

    def __init__(self, message: str, *, attempt_count: int, last_error_code: str, last_error: Any = None):
        super().__init__(message, error_code=last_error_code, error=last_error, attempt_count=attempt_count)
        self.last_error_code = last_error_code
        self.last_error = last_error


# =================================================================================================================
# Executor
# =================================================================================================================

def compute_delay_ms(policy: RetryPolicy, attempt_index: int) -> float:
    """Delay before retrying after the failed attempt `attempt_index` (0-based)."""
    delay = policy.initial_delay_ms * (policy.backoff_factor ** attempt_index)
    return min(delay, policy.max_delay_ms)


def _error_message(error: Any) -> str:
    return error_details(error).get("message") or str(error)


async def execute_with_retry(
    op: Callable[[], Awaitable[R]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    operation: str | None = None,
) -> R:
    """
    Run `op` until it succeeds, fails with a non-retryable code, or attempts run out.

    Args:
        op: zero-argument async callable returning an object with an `error` attribute
        policy: RetryPolicy controlling attempts and delays
        sleep: awaitable sleep taking seconds (defaults to asyncio.sleep)
        operation: label used in log records

    Returns:
        The first result whose `error` is falsy.

    Raises:
        RemoteOperationError: the failure code is not retryable
        RetryExhaustedError: max_retries + 1 attempts all failed with retryable codes
    """
    total_attempts = policy.max_retries + 1
    label = operation or getattr(op, "__name__", "operation")

    for attempt_index in range(total_attempts):
        result = await op()
        error = getattr(result, "error", None)
        if not error:
            if attempt_index:
                logger.info(
                    "retry.succeeded",
                    extra={"operation": label, "attempt": attempt_index + 1},
                )
            return result

        code = classify_error(error)
        attempt = attempt_index + 1

        if not is_retryable(code, policy):
            logger.debug(
                "retry.non_retryable",
                extra={"operation": label, "attempt": attempt, "error_code": code},
            )
            raise RemoteOperationError(
                f"{label} failed: {_error_message(error)}",
                error_code=code,
                error=error,
                attempt_count=attempt,
            )

        if attempt == total_attempts:
            logger.error(
                "retry.exhausted",
                extra={"operation": label, "attempts": attempt, "error_code": code},
            )
            raise RetryExhaustedError(
                f"{label} failed after {attempt} attempts: {_error_message(error)}",
                attempt_count=attempt,
                last_error_code=code,
                last_error=error,
            )

        delay_ms = compute_delay_ms(policy, attempt_index)
        logger.warning(
            "retry.attempt_failed",
            extra={
                "operation": label,
                "attempt": attempt,
                "max_attempts": total_attempts,
                "error_code": code,
                "delay_ms": delay_ms,
            },
        )
        await sleep(delay_ms / 1000)

    # unreachable: the loop always returns or raises
    raise RuntimeError("retry loop exited without a result")
