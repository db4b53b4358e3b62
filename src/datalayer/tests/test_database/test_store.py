import pytest
from sqlalchemy.exc import OperationalError

from datalayer.database.query import Query
from datalayer.database.store import MULTIPLE_ROWS, UNDEFINED_TABLE, SqlAlchemyStore, StoreAdapter, StoreError


@pytest.fixture
def store(connection_manager) -> SqlAlchemyStore:
    return SqlAlchemyStore(connection_manager)


async def _seed(store, *titles):
    for title in titles:
        result = await store.execute(Query.table("posts").insert({"titulo": title, "author": "ana"}))
        assert result.ok


@pytest.mark.asyncio
class TestSqlAlchemyStore:

    async def test_is_a_store_adapter(self, store):
        assert isinstance(store, StoreAdapter)

    async def test_insert_returning_single_row(self, store):
        result = await store.execute(Query.table("posts").insert({"titulo": "hola"}).returning().single())

        assert result.ok
        assert result.data["titulo"] == "hola"
        assert result.data["id"]

    async def test_insert_without_returning_reports_rowcount(self, store):
        result = await store.execute(Query.table("posts").insert({"titulo": "hola"}))
        assert result.ok
        assert result.data is None
        assert result.count == 1

    async def test_select_with_exact_count_and_window(self, store):
        await _seed(store, "a", "b", "c", "d")

        result = await store.execute(
            Query.table("posts").select(count="exact").order("titulo", ascending=False).range(1, 2)
        )

        assert result.count == 4
        assert [row["titulo"] for row in result.data] == ["c", "b"]

    async def test_head_count_returns_no_rows(self, store):
        await _seed(store, "a", "b")
        result = await store.execute(Query.table("posts").select(head=True).eq("author", "ana"))
        assert result.data is None
        assert result.count == 2

    async def test_single_with_no_match_is_none(self, store):
        result = await store.execute(Query.table("posts").select().eq("id", "nope").single())
        assert result.ok
        assert result.data is None

    async def test_single_with_many_matches_is_an_error(self, store):
        await _seed(store, "a", "b")
        result = await store.execute(Query.table("posts").select().eq("author", "ana").single())
        assert not result.ok
        assert result.error.code == MULTIPLE_ROWS

    async def test_update_and_delete(self, store):
        await _seed(store, "a", "b")

        updated = await store.execute(
            Query.table("posts").update({"author": "luis"}).eq("titulo", "a").returning()
        )
        assert [row["author"] for row in updated.data] == ["luis"]

        deleted = await store.execute(Query.table("posts").delete().eq("author", "ana"))
        assert deleted.count == 1

        remaining = await store.execute(Query.table("posts").select("titulo"))
        assert remaining.data == [{"titulo": "a"}]

    async def test_missing_table_is_reported_not_raised(self, store):
        result = await store.execute(Query.table("does_not_exist").select(head=True))
        assert not result.ok
        assert result.error.code == UNDEFINED_TABLE
        assert result.error.name == "OperationalError"


class TestStoreError:

    def test_from_dbapi_error_unwraps_driver_exception(self):
        class FakeDriverError(Exception):
            sqlstate = "40001"
            detail = "could not serialize access"

        wrapped = OperationalError("SELECT 1", {}, FakeDriverError("serialization failure"))
        error = StoreError.from_exception(wrapped)

        assert error.code == "40001"
        assert error.sqlstate == "40001"
        assert error.details == "could not serialize access"
        assert error.name == "FakeDriverError"
        assert error.message == "serialization failure"

    def test_relation_missing_message_maps_to_undefined_table(self):
        error = StoreError.from_exception(OSError('relation "posts" does not exist'))
        assert error.code == UNDEFINED_TABLE
        assert error.sqlstate == UNDEFINED_TABLE

    def test_plain_network_error_has_no_code(self):
        error = StoreError.from_exception(ConnectionRefusedError("refused"))
        assert error.code is None
        assert error.name == "ConnectionRefusedError"

    @pytest.mark.parametrize(
        "sqlstate, expected_code",
        [("08006", "connection_error"), ("57P01", "connection_error"), ("53300", "connection_limit")],
    )
    def test_connection_class_sqlstate_becomes_canonical_code(self, sqlstate, expected_code):
        class DriverError(Exception):
            pass

        driver_error = DriverError("connection failure")
        driver_error.sqlstate = sqlstate

        error = StoreError.from_exception(OperationalError("SELECT 1", {}, driver_error))

        assert error.code == expected_code
        assert error.sqlstate == sqlstate

    def test_other_sqlstates_stay_verbatim(self):
        class DriverError(Exception):
            sqlstate = "23505"

        error = StoreError.from_exception(OperationalError("INSERT", {}, DriverError("duplicate key")))
        assert error.code == error.sqlstate == "23505"
