"""
Generic repository over one collection of the remote store.

`Repository[T]` gives every collection the same CRUD, pagination and
soft-delete behaviour. Domain-specific behaviour is injected through hooks on
`RepositoryConfig` (apply_filters / prepare_insert / prepare_update) instead of
subclass overrides:

    posts = Repository(
        RepositoryConfig(collection_name="posts", soft_delete=True, model=Post,
                         apply_filters=lambda q, f: q.eq("author_id", f.author_id)
                                                   if getattr(f, "author_id", None) else q),
        connection=manager,
    )
    page = await posts.list({"page": 2, "limit": 5})

Every remote call goes through the retry executor and runs under its own
operation id (see core.logging.filters). Failures leave the repository as one
of ValidationError / NotFoundError / DatabaseError:

| Method          | not found        | remote failure                     |
| --------------- | ---------------- | ---------------------------------- |
| get_by_id       | returns None     | DatabaseError                      |
| list            | empty page       | success=False page with the error  |
| exists_by_id    | False            | False                              |
| create          | -                | DatabaseError                      |
| update / delete | NotFoundError    | DatabaseError                      |
| count           | 0                | DatabaseError                      |

Invalid ids and empty payloads raise ValidationError before any query is built.
"""

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.logging.filters import operation_context
from ..core.retry import RemoteOperationError, RetryPolicy, execute_with_retry
from ..database.query import Query
from ..database.store import SqlAlchemyStore, StoreAdapter, StoreResult
from ..exceptions.base import DatabaseError, NotFoundError, RepositoryError, ValidationError
from ..exceptions.mapper import repository_error_handler
from ..validators.input_validators import validate_id, validate_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ListFilter(BaseModel):
    """
    Pagination/sorting filter. Unknown keys are kept (model_extra) for the
    apply_filters hook.
    """

    model_config = ConfigDict(extra="allow")

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] = "desc"


class PaginatedResult(BaseModel, Generic[T]):
    success: bool
    items: list[T] = Field(default_factory=list)
    page: int
    limit: int
    total: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    error: str | None = None


class RepositoryConfig(BaseModel):
    """
    Per-collection configuration.

    Args:
        collection_name: table / collection name
        id_column: primary identifier column
        soft_delete: hide rows whose `deleted_column` is set instead of deleting them
        retry_policy: RetryPolicy for every remote call
        cache_time_seconds: advisory TTL for callers that cache results (not enforced here)
        uuid_ids: require ids to be canonical UUID strings
        model: optional pydantic model; rows are validated into it
        apply_filters: (query, ListFilter) -> query, domain filtering for list()/count()
        prepare_insert / prepare_update: dict -> dict payload transforms
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    collection_name: str = Field(min_length=1)
    id_column: str = "id"
    soft_delete: bool = False
    deleted_column: str = "deleted_at"
    created_column: str = "created_at"
    updated_column: str = "updated_at"
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    cache_time_seconds: int | None = None
    uuid_ids: bool = True
    model: type[BaseModel] | None = None
    apply_filters: Callable[[Query, ListFilter], Query] | None = None
    prepare_insert: Callable[[dict[str, Any]], dict[str, Any]] | None = None
    prepare_update: Callable[[dict[str, Any]], dict[str, Any]] | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repository(Generic[T]):
    """
    Generic repository providing CRUD, pagination and soft delete.

    Type Parameters:
        T: entity type (RepositoryConfig.model when set, otherwise dict)
    """

    def __init__(
        self,
        config: RepositoryConfig,
        connection,
        *,
        store: StoreAdapter | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        """
        Args:
            config: RepositoryConfig for the collection
            connection: ConnectionManager the handle is taken from
            store: adapter executing queries (default: SqlAlchemyStore over `connection`)
            clock: zero-argument callable returning an aware datetime (timestamps)
            sleep: awaitable sleep used between retries (default: asyncio.sleep)
        """
        self.config = config
        self.connection = connection
        self.store: StoreAdapter = store or SqlAlchemyStore(connection)
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep

    @property
    def collection(self) -> str:
        return self.config.collection_name

    # =================================================================================================================
    # Internals
    # =================================================================================================================

    def _query(self) -> Query:
        return Query.table(self.collection)

    def _visible(self, query: Query, include_deleted: bool = False) -> Query:
        if self.config.soft_delete and not include_deleted:
            return query.is_(self.config.deleted_column, None)
        return query

    def _validate_id(self, entity_id: Any) -> None:
        validate_id(entity_id, uuid_ids=self.config.uuid_ids, id_column=self.config.id_column)

    def _now(self) -> str:
        return self._clock().isoformat()

    def _to_entity(self, row: Mapping[str, Any]) -> T:
        if self.config.model is not None:
            return self.config.model.model_validate(dict(row))
        return dict(row)

    async def _execute(self, operation: str, query: Query) -> StoreResult:
        """
        Run one query through the retry executor under a fresh operation id,
        logging elapsed time.
        """
        with operation_context():
            start = time.perf_counter()
            logger.debug(
                "repo.execute.start",
                extra={"collection": self.collection, "operation": operation, "action": query.action.value},
            )
            try:
                result = await execute_with_retry(
                    lambda: self.store.execute(query),
                    self.config.retry_policy,
                    sleep=self._sleep,
                    operation=f"{self.collection}.{operation}",
                )
            except RemoteOperationError as exc:
                logger.warning(
                    "repo.execute.failed",
                    extra={
                        "collection": self.collection,
                        "operation": operation,
                        "error_code": exc.error_code,
                        "attempts": exc.attempt_count,
                        "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                    },
                )
                raise

            data = result.data
            logger.debug(
                "repo.execute.success",
                extra={
                    "collection": self.collection,
                    "operation": operation,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                    "result_size": len(data) if isinstance(data, list) else int(data is not None),
                    "total_count": result.count,
                },
            )
            return result

    def _degraded_page(self, error: str) -> PaginatedResult[T]:
        return PaginatedResult(success=False, items=[], page=1, limit=10, total=0, total_pages=0, error=error)

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def get_by_id(self, entity_id: Any, *, include_deleted: bool = False) -> T | None:
        """
        Get an entity by its ID.

        Returns:
            The entity, or None when no (visible) row matches.

        Raises:
            ValidationError: malformed id (no query is issued)
            DatabaseError: the store failed after retries
        """
        with repository_error_handler("get_by_id", collection=self.collection):
            self._validate_id(entity_id)
            query = self._visible(
                self._query().select().eq(self.config.id_column, entity_id), include_deleted
            ).single()

            result = await self._execute("get_by_id", query)
            if not result.data:
                logger.debug("repo.get_by_id.not_found", extra={"collection": self.collection, "id": entity_id})
                return None
            return self._to_entity(result.data)

    async def get_by_id_or_raise(self, entity_id: Any) -> T:
        """
        Get an entity by its ID or raise NotFoundError.
        """
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.collection} with ID {entity_id} not found", fields=[self.config.id_column])
        return entity

    async def list(
        self,
        filter: ListFilter | Mapping[str, Any] | None = None,
        *,
        include_deleted: bool = False,
    ) -> PaginatedResult[T]:
        """
        Page through the collection.

        The filter is merged over {page: 1, limit: 10, sort_by: id_column,
        sort_order: "desc"}. Never raises for store failures: the returned page
        has success=False and carries the error message instead.
        """
        try:
            with repository_error_handler("list", collection=self.collection):
                merged = self._merge_filter(filter)
                offset = (merged.page - 1) * merged.limit

                query = self._visible(self._query().select(count="exact"), include_deleted)
                if self.config.apply_filters is not None:
                    query = self.config.apply_filters(query, merged)
                query = query.order(merged.sort_by, ascending=merged.sort_order == "asc")
                query = query.range(offset, offset + merged.limit - 1)

                result = await self._execute("list", query)

                rows = result.data if isinstance(result.data, list) else []
                total = result.count or 0
                items = [self._to_entity(row) for row in rows]
        except RepositoryError as exc:
            return self._degraded_page(exc.message)

        logger.debug(
            "repo.list.success",
            extra={"collection": self.collection, "returned": len(items), "total": total},
        )
        return PaginatedResult(
            success=True,
            items=items,
            page=merged.page,
            limit=merged.limit,
            total=total,
            total_pages=math.ceil(total / merged.limit),
        )

    def _merge_filter(self, filter: ListFilter | Mapping[str, Any] | None) -> ListFilter:
        if isinstance(filter, ListFilter):
            values = filter.model_dump()
        else:
            values = dict(filter or {})
        values = {k: v for k, v in values.items() if v is not None}
        values.setdefault("sort_by", self.config.id_column)
        try:
            return ListFilter(**values)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid list filter: {exc.errors()[0]['msg']}") from exc

    async def exists_by_id(self, entity_id: Any, *, include_deleted: bool = False) -> bool:
        """
        True when a (visible) row with this id exists.

        Raises ValidationError for a malformed id; store failures degrade to False.
        """
        self._validate_id(entity_id)
        query = self._visible(
            self._query().select(self.config.id_column, head=True).eq(self.config.id_column, entity_id),
            include_deleted,
        )
        try:
            with repository_error_handler("exists_by_id", collection=self.collection):
                result = await self._execute("exists_by_id", query)
        except DatabaseError:
            return False
        return (result.count or 0) > 0

    async def count(self, filter: ListFilter | Mapping[str, Any] | None = None) -> int:
        """
        Exact number of visible rows matching the filter hook.

        Raises:
            DatabaseError: the store failed after retries
        """
        with repository_error_handler("count", collection=self.collection):
            query = self._visible(self._query().select(head=True))
            if self.config.apply_filters is not None:
                query = self.config.apply_filters(query, self._merge_filter(filter))
            result = await self._execute("count", query)
            return result.count or 0

    # =================================================================================================================
    # Write Operations
    # =================================================================================================================

    async def create(self, data: Mapping[str, Any]) -> T:
        """
        Insert a row and return it as stored.

        Missing created/updated columns are stamped with the current time.

        Raises:
            ValidationError: empty payload
            DatabaseError: the store failed or returned no row
        """
        with repository_error_handler("create", collection=self.collection):
            validate_payload(data, operation="create")
            logger.debug(
                "repo.create.start",
                extra={"collection": self.collection, "provided_keys": sorted(data.keys())},
            )

            prepared = dict(data)
            if self.config.prepare_insert is not None:
                prepared = self.config.prepare_insert(prepared)
            now = self._now()
            for column in (self.config.created_column, self.config.updated_column):
                if not prepared.get(column):
                    prepared[column] = now

            result = await self._execute("create", self._query().insert(prepared).returning().single())
            if not result.data:
                raise DatabaseError(f"Failed to create {self.collection}")

            logger.info(
                "repo.create.success",
                extra={"collection": self.collection, "id": result.data.get(self.config.id_column)},
            )
            return self._to_entity(result.data)

    async def update(self, entity_id: Any, data: Mapping[str, Any]) -> T:
        """
        Update a visible row and return it.

        Raises:
            ValidationError: malformed id or empty payload
            NotFoundError: no visible row with this id
            DatabaseError: the store failed or returned no row
        """
        with repository_error_handler("update", collection=self.collection):
            self._validate_id(entity_id)
            validate_payload(data, operation="update")

            if not await self.exists_by_id(entity_id):
                raise NotFoundError(f"{self.collection} with ID {entity_id} not found", fields=[self.config.id_column])

            prepared = dict(data)
            if self.config.prepare_update is not None:
                prepared = self.config.prepare_update(prepared)
            prepared[self.config.updated_column] = self._now()

            query = self._visible(
                self._query().update(prepared).eq(self.config.id_column, entity_id)
            ).returning().single()
            result = await self._execute("update", query)
            if not result.data:
                raise DatabaseError(f"Failed to update {self.collection} with ID {entity_id}")

            logger.info("repo.update.success", extra={"collection": self.collection, "id": entity_id})
            return self._to_entity(result.data)

    async def delete(self, entity_id: Any) -> bool:
        """
        Delete a visible row: soft delete stamps the deleted column, otherwise the
        row is removed.

        Raises:
            ValidationError: malformed id
            NotFoundError: no visible row with this id
            DatabaseError: the store failed after retries
        """
        with repository_error_handler("delete", collection=self.collection):
            self._validate_id(entity_id)

            if not await self.exists_by_id(entity_id):
                raise NotFoundError(f"{self.collection} with ID {entity_id} not found", fields=[self.config.id_column])

            if self.config.soft_delete:
                query = (
                    self._query()
                    .update({self.config.deleted_column: self._now()})
                    .eq(self.config.id_column, entity_id)
                    .is_(self.config.deleted_column, None)
                )
            else:
                query = self._query().delete().eq(self.config.id_column, entity_id)

            await self._execute("delete", query)
            logger.info(
                "repo.delete.success",
                extra={"collection": self.collection, "id": entity_id, "soft": self.config.soft_delete},
            )
            return True
