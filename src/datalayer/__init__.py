"""
datalayer: resilient data access over a remote relational store.

    from datalayer import ConnectionManager, Repository, RepositoryConfig
"""

from .core.retry import RetryPolicy, execute_with_retry
from .database import ConnectionConfig, ConnectionManager, ConnectionState, Query
from .exceptions import (
    ConfigurationError,
    DatabaseError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from .exceptions.classifier import classify_error
from .repositories import ListFilter, PaginatedResult, Repository, RepositoryConfig

__all__ = [
    "RetryPolicy",
    "execute_with_retry",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "Query",
    "ConfigurationError",
    "DatabaseError",
    "NotFoundError",
    "RepositoryError",
    "ValidationError",
    "classify_error",
    "ListFilter",
    "PaginatedResult",
    "Repository",
    "RepositoryConfig",
]
