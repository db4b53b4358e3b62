import dataclasses

import pytest

from datalayer.database.query import Action, CountMode, Operator, Query


class TestQueryBuilder:

    def test_builder_methods_return_new_queries(self):
        base = Query.table("posts")
        narrowed = base.select().eq("author", "ana")

        assert base.predicates == ()
        assert len(narrowed.predicates) == 1
        with pytest.raises(dataclasses.FrozenInstanceError):
            narrowed.collection = "users"

    def test_select_modes(self):
        assert Query.table("posts").select().count_mode is CountMode.NONE
        assert Query.table("posts").select(count="exact").count_mode is CountMode.EXACT
        assert Query.table("posts").select(head=True).count_mode is CountMode.HEAD

    def test_write_actions(self):
        insert = Query.table("posts").insert({"titulo": "x"}).returning()
        assert insert.action is Action.INSERT
        assert insert.is_write and insert.return_rows
        assert Query.table("posts").delete().payload is None
        assert not Query.table("posts").select().is_write

    def test_predicate_operators(self):
        query = (
            Query.table("posts")
            .neq("a", 1).gt("b", 1).gte("c", 1).lt("d", 1).lte("e", 1)
            .in_("f", [1, 2]).like("g", "x%").ilike("h", "X%").is_("deleted_at", None)
        )
        operators = [p.operator for p in query.predicates]
        assert operators == [
            Operator.NEQ, Operator.GT, Operator.GTE, Operator.LT, Operator.LTE,
            Operator.IN, Operator.LIKE, Operator.ILIKE, Operator.IS,
        ]
        assert query.predicates[5].value == (1, 2)

    def test_range_is_inclusive_and_validated(self):
        assert Query.table("posts").range(5, 9).row_range == (5, 9)
        assert Query.table("posts").limit(3).row_range == (0, 2)
        with pytest.raises(ValueError):
            Query.table("posts").range(5, 4)
        with pytest.raises(ValueError):
            Query.table("posts").range(-1, 4)

    def test_referenced_columns_are_unique_and_ordered(self):
        query = Query.table("posts").update({"titulo": "y"}).eq("id", "1").is_("deleted_at", None).order("id")
        assert query.referenced_columns() == ["titulo", "id", "deleted_at"]

    def test_table_name_is_required(self):
        with pytest.raises(ValueError):
            Query.table("")
