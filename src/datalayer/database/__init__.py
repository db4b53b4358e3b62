from .query import Query, Predicate, Ordering, Action, CountMode, Operator
from .store import StoreAdapter, StoreError, StoreResult, SqlAlchemyStore
from .connection import (
    ConnectionConfig,
    ConnectionManager,
    ConnectionState,
    ConnectionStats,
    create_engine_from_config,
)

__all__ = [
    "Query",
    "Predicate",
    "Ordering",
    "Action",
    "CountMode",
    "Operator",
    "StoreAdapter",
    "StoreError",
    "StoreResult",
    "SqlAlchemyStore",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStats",
    "create_engine_from_config",
]
