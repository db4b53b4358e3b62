"""
Error taxonomy for the data layer.

Every failure that leaves a repository is one of:

    RepositoryError
    ├── ValidationError      bad input, detected before any remote call
    ├── NotFoundError        the target entity does not exist (write paths only)
    ├── DatabaseError        the remote store failed (after retries, if any)
    └── ConfigurationError   the ConnectionManager cannot be built from its config

Callers catch these, never driver or SQLAlchemy exceptions.
"""

from typing import Iterable


class RepositoryError(Exception):
    """
    Base exception for repository/data-layer errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['id'])
    - error_code: canonical short code (e.g., 'not_found') used by clients
    - cause: the underlying error, if any (also chained as __cause__ by the raiser)
    """

    # Map canonical error_code -> default HTTP status.
    ERROR_CODE_TO_STATUS = {
        "validation_error": 422,
        "not_found": 404,
        "database_error": 500,
        "configuration_error": 500,
        # fallback: default to 400 for general repository errors
    }

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 error_code: str | None = None, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields) if fields else None
        self.error_code = error_code
        self.cause = cause

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def to_payload(self) -> dict:
        """
        Return a JSON-serializable dict suitable for API responses.
        Standard shape:
            {
                "detail": "A human-friendly message",
                "code": "not_found",           # optional canonical code
                "fields": ["id"],              # optional list for client usage
            }
        The cause is never included: raw store messages stay in the logs.
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def http_status(self) -> int:
        """
        Return the HTTP status code that should accompany this error.
        - If the exception has an error_code that will be looked up in ERROR_CODE_TO_STATUS.
        - Otherwise default to 400 (Bad Request).
        """
        if self.error_code:
            return self.ERROR_CODE_TO_STATUS.get(self.error_code, 400)
        return 400


class ValidationError(RepositoryError):
    """Raised when caller input is rejected before reaching the store."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="validation_error")


class NotFoundError(RepositoryError):
    def __init__(self, message: str = "Not found", *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="not_found")


class DatabaseError(RepositoryError):
    """
    The remote store failed.

    When built from an exhausted retry loop, `attempt_count` and
    `last_error_code` are set and http_status() reports 503 (transient outage)
    instead of 500.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None,
                 attempt_count: int | None = None, last_error_code: str | None = None):
        super().__init__(message, error_code="database_error", cause=cause)
        self.attempt_count = attempt_count
        self.last_error_code = last_error_code

    @property
    def retries_exhausted(self) -> bool:
        return self.attempt_count is not None

    def http_status(self) -> int:
        if self.retries_exhausted:
            return 503
        return super().http_status()


class ConfigurationError(RepositoryError):
    """Raised when a ConnectionManager is constructed from an unusable config."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="configuration_error")


__all__ = [
    "RepositoryError",
    "ValidationError",
    "NotFoundError",
    "DatabaseError",
    "ConfigurationError",
]
