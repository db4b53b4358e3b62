"""
Store adapter: executes a logical `Query` against the current handle.

The adapter never raises for store-side failures. Driver/SQLAlchemy errors,
network errors and timeouts come back as `StoreResult(error=StoreError(...))`
so the retry executor can classify them. Programming errors (bad arguments,
bugs) still raise.

The handle is resolved from the ConnectionManager on every call, so a reset()
is picked up by the next query while in-flight queries finish on the old engine.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete, func, insert, literal_column, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql import column, table

from ..exceptions.classifier import sqlstate_error_code
from .query import Action, CountMode, Operator, Query

logger = logging.getLogger(__name__)

# SQLSTATE for "relation does not exist"
UNDEFINED_TABLE = "42P01"
MULTIPLE_ROWS = "multiple_rows"

# dialects without schema namespaces
_SCHEMALESS_DIALECTS = frozenset({"sqlite"})


# =================================================================================================================
# Result types
# =================================================================================================================

@dataclass(frozen=True)
class StoreError:
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None
    status: int | None = None
    name: str | None = None
    sqlstate: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "StoreError":
        """
        Flatten a driver/SQLAlchemy/network exception into a StoreError.

        - sqlstate: SQLSTATE from the DBAPI error (asyncpg `sqlstate`, psycopg `pgcode`)
        - code: the SQLSTATE, except connection-class SQLSTATEs which become the canonical
          code (connection_error, connection_limit, timeout) so default policies retry them
        - a missing-table message without a SQLSTATE is normalised to 42P01
        - name: the innermost exception class name (used by the classifier)
        """
        orig = exc.orig if isinstance(exc, DBAPIError) and exc.orig is not None else exc
        message = str(orig) or type(orig).__name__

        sqlstate = _sqlstate(orig)
        if sqlstate is None and _is_missing_table(message):
            sqlstate = UNDEFINED_TABLE
        code = sqlstate_error_code(sqlstate) or sqlstate

        return cls(
            message=message,
            code=code,
            details=getattr(orig, "detail", None) or None,
            hint=getattr(orig, "hint", None) or None,
            name=type(orig).__name__,
            sqlstate=sqlstate,
        )


@dataclass(frozen=True)
class StoreResult:
    data: Any = None
    error: StoreError | None = None
    count: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _sqlstate(orig: BaseException) -> str | None:
    # SQLAlchemy's asyncpg adapter keeps the driver exception as __cause__
    for candidate in (orig, orig.__cause__):
        if candidate is None:
            continue
        for attr in ("sqlstate", "pgcode"):
            value = getattr(candidate, attr, None)
            if isinstance(value, str) and value:
                return value
    return None


def _is_missing_table(message: str) -> bool:
    lowered = message.lower()
    return "no such table" in lowered or ("relation" in lowered and "does not exist" in lowered)


@runtime_checkable
class StoreAdapter(Protocol):
    async def execute(self, query: Query) -> StoreResult: ...


# =================================================================================================================
# SQLAlchemy adapter
# =================================================================================================================

class SqlAlchemyStore:
    """
    StoreAdapter backed by an AsyncEngine obtained from `connection.get_handle()`.

    Args:
        connection: anything exposing get_handle() -> AsyncEngine and a `config`
                    with `db_schema` (normally a ConnectionManager)
    """

    def __init__(self, connection):
        self.connection = connection

    async def execute(self, query: Query) -> StoreResult:
        engine: AsyncEngine = self.connection.get_handle()
        try:
            if query.is_write:
                return await self._execute_write(engine, query)
            return await self._execute_read(engine, query)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            error = StoreError.from_exception(exc)
            logger.debug(
                "store.execute.failed",
                extra={
                    "collection": query.collection,
                    "action": query.action.value,
                    "error_code": error.code,
                    "error_name": error.name,
                },
            )
            return StoreResult(error=error)

    # ------------------------
    # Statement building
    # ------------------------
    def _schema_for(self, engine: AsyncEngine) -> str | None:
        if engine.dialect.name in _SCHEMALESS_DIALECTS:
            return None
        config = getattr(self.connection, "config", None)
        return getattr(config, "db_schema", None)

    def _table(self, engine: AsyncEngine, query: Query):
        columns = [column(name) for name in query.referenced_columns()]
        return table(query.collection, *columns, schema=self._schema_for(engine))

    @staticmethod
    def _conditions(tbl, query: Query) -> list:
        conditions = []
        for predicate in query.predicates:
            col = tbl.c[predicate.column]
            op, value = predicate.operator, predicate.value
            if op is Operator.EQ:
                conditions.append(col == value)
            elif op is Operator.NEQ:
                conditions.append(col != value)
            elif op is Operator.GT:
                conditions.append(col > value)
            elif op is Operator.GTE:
                conditions.append(col >= value)
            elif op is Operator.LT:
                conditions.append(col < value)
            elif op is Operator.LTE:
                conditions.append(col <= value)
            elif op is Operator.IN:
                conditions.append(col.in_(list(value)))
            elif op is Operator.LIKE:
                conditions.append(col.like(value))
            elif op is Operator.ILIKE:
                conditions.append(col.ilike(value))
            elif op is Operator.IS:
                conditions.append(col.is_(value))
            else:
                raise ValueError(f"unsupported operator: {op}")
        return conditions

    @staticmethod
    def _projection(query: Query) -> list:
        if query.columns.strip() == "*":
            return [literal_column("*")]
        return [column(name.strip()) for name in query.columns.split(",") if name.strip()]

    # ------------------------
    # Execution
    # ------------------------
    async def _execute_read(self, engine: AsyncEngine, query: Query) -> StoreResult:
        tbl = self._table(engine, query)
        conditions = self._conditions(tbl, query)

        async with engine.connect() as conn:
            count = None
            if query.count_mode is not CountMode.NONE:
                count_stmt = select(func.count()).select_from(tbl).where(*conditions)
                count = (await conn.execute(count_stmt)).scalar_one()
                if query.count_mode is CountMode.HEAD:
                    return StoreResult(data=None, count=count)

            stmt = select(*self._projection(query)).select_from(tbl).where(*conditions)
            for ordering in query.orderings:
                col = tbl.c[ordering.column]
                stmt = stmt.order_by(col.asc() if ordering.ascending else col.desc())
            if query.row_range is not None:
                start, end = query.row_range
                stmt = stmt.offset(start).limit(end - start + 1)
            elif query.expect_single:
                stmt = stmt.limit(2)

            rows = [dict(row) for row in (await conn.execute(stmt)).mappings().all()]

        return self._shape(query, rows, count)

    async def _execute_write(self, engine: AsyncEngine, query: Query) -> StoreResult:
        tbl = self._table(engine, query)
        conditions = self._conditions(tbl, query)

        if query.action is Action.INSERT:
            stmt = insert(tbl).values(dict(query.payload or {}))
        elif query.action is Action.UPDATE:
            stmt = update(tbl).where(*conditions).values(dict(query.payload or {}))
        else:
            stmt = delete(tbl).where(*conditions)

        if query.return_rows:
            stmt = stmt.returning(literal_column("*"))

        async with engine.begin() as conn:
            result = await conn.execute(stmt)
            if query.return_rows:
                rows = [dict(row) for row in result.mappings().all()]
                return self._shape(query, rows, len(rows))
            return StoreResult(data=None, count=result.rowcount)

    @staticmethod
    def _shape(query: Query, rows: list[dict], count: int | None) -> StoreResult:
        if not query.expect_single:
            return StoreResult(data=rows, count=count)
        if len(rows) > 1:
            return StoreResult(
                error=StoreError(
                    message=f"expected at most one row from {query.collection}, got {len(rows)}",
                    code=MULTIPLE_ROWS,
                    name="MultipleRowsError",
                )
            )
        return StoreResult(data=rows[0] if rows else None, count=count)
