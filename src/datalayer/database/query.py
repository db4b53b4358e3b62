"""
Logical query value object.

A `Query` describes one operation against one collection (table) without
knowing anything about SQL or drivers. Every fluent method returns a new
instance, so a base query can be shared and refined freely:

    base = Query.table("posts").select(count="exact").is_("deleted_at", None)
    page = base.order("created_at", ascending=False).range(0, 9)

The store adapter (store.py) turns a Query into SQLAlchemy Core.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping


class Action(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class CountMode(str, Enum):
    NONE = "none"      # rows only
    EXACT = "exact"    # rows + total matching count
    HEAD = "head"      # count only, no rows


class Operator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    LIKE = "like"
    ILIKE = "ilike"
    IS = "is"


@dataclass(frozen=True)
class Predicate:
    column: str
    operator: Operator
    value: Any


@dataclass(frozen=True)
class Ordering:
    column: str
    ascending: bool = True


@dataclass(frozen=True)
class Query:
    collection: str
    action: Action = Action.SELECT
    columns: str = "*"
    payload: Mapping[str, Any] | None = None
    predicates: tuple[Predicate, ...] = ()
    orderings: tuple[Ordering, ...] = ()
    row_range: tuple[int, int] | None = None
    expect_single: bool = False
    count_mode: CountMode = CountMode.NONE
    return_rows: bool = False

    @classmethod
    def table(cls, name: str) -> "Query":
        if not name:
            raise ValueError("collection name is required")
        return cls(collection=name)

    # ------------------------
    # Actions
    # ------------------------
    def select(self, columns: str = "*", *, count: str | CountMode = CountMode.NONE,
               head: bool = False) -> "Query":
        """
        Read rows. `count="exact"` also reports the total number of matching rows;
        `head=True` reports only that count.
        """
        mode = CountMode(count)
        if head:
            mode = CountMode.HEAD
        return replace(self, action=Action.SELECT, columns=columns, count_mode=mode)

    def insert(self, payload: Mapping[str, Any]) -> "Query":
        return replace(self, action=Action.INSERT, payload=dict(payload))

    def update(self, payload: Mapping[str, Any]) -> "Query":
        return replace(self, action=Action.UPDATE, payload=dict(payload))

    def delete(self) -> "Query":
        return replace(self, action=Action.DELETE, payload=None)

    def returning(self) -> "Query":
        """Ask a write to hand back the affected rows."""
        return replace(self, return_rows=True)

    # ------------------------
    # Predicates
    # ------------------------
    def filter(self, column: str, operator: str | Operator, value: Any) -> "Query":
        predicate = Predicate(column=column, operator=Operator(operator), value=value)
        return replace(self, predicates=self.predicates + (predicate,))

    def eq(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.EQ, value)

    def neq(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.NEQ, value)

    def gt(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.GT, value)

    def gte(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.GTE, value)

    def lt(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.LT, value)

    def lte(self, column: str, value: Any) -> "Query":
        return self.filter(column, Operator.LTE, value)

    def in_(self, column: str, values: Iterable[Any]) -> "Query":
        return self.filter(column, Operator.IN, tuple(values))

    def like(self, column: str, pattern: str) -> "Query":
        return self.filter(column, Operator.LIKE, pattern)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self.filter(column, Operator.ILIKE, pattern)

    def is_(self, column: str, value: bool | None) -> "Query":
        """IS NULL / IS TRUE / IS FALSE."""
        return self.filter(column, Operator.IS, value)

    # ------------------------
    # Shaping
    # ------------------------
    def order(self, column: str, *, ascending: bool = True) -> "Query":
        return replace(self, orderings=self.orderings + (Ordering(column, ascending),))

    def range(self, start: int, end: int) -> "Query":
        """Inclusive row window [start, end] (0-based)."""
        if start < 0 or end < start:
            raise ValueError(f"invalid range [{start}, {end}]")
        return replace(self, row_range=(start, end))

    def limit(self, count: int) -> "Query":
        return self.range(0, count - 1)

    def single(self) -> "Query":
        """
        Expect at most one row: data becomes that row (or None), and more than one
        matching row is reported as an error.
        """
        return replace(self, expect_single=True)

    # ------------------------
    # Introspection helpers used by the adapter
    # ------------------------
    @property
    def is_write(self) -> bool:
        return self.action is not Action.SELECT

    def referenced_columns(self) -> list[str]:
        """Every column name the query touches (payload keys, predicates, orderings)."""
        names: list[str] = []
        for name in (
            list(self.payload or ())
            + [p.column for p in self.predicates]
            + [o.column for o in self.orderings]
        ):
            if name not in names:
                names.append(name)
        return names
