"""Chainable query builder bound to a model descriptor."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from rem.connection import Result, execute, fetch_all
from rem.dialects import resolve_dialect
from rem.exceptions import NoRowsError, QueryError
from rem.filters import AND, And, FilterClause, Or, Q, flatten
from rem.fragments import Fragment
from rem.relationships import prefetch

if TYPE_CHECKING:
    from rem.base import Base
    from rem.connection import Connection
    from rem.context import QueryContext
    from rem.dialects.base import Dialect
    from rem.fields import ColumnInfo
    from rem.model import Model


T = TypeVar("T", bound="Base")


@dataclass
class JoinClause:
    """``{direction} JOIN table ON ...``."""

    direction: str
    table: str
    on: list[FilterClause] = field(default_factory=list)


@dataclass
class QueryConfig:
    """Everything a dialect needs to compile a statement."""

    table: str = ""
    fields: dict[str, ColumnInfo] = field(default_factory=dict)
    filters: list[FilterClause] = field(default_factory=list)
    joins: list[JoinClause] = field(default_factory=list)
    sort: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    selected: list[Any] = field(default_factory=list)
    count: bool = False
    fetch_related: list[str] = field(default_factory=list)
    transaction: Connection | None = None
    context: QueryContext | None = None
    # Bound values preceding this statement's own, when rendered as a subquery
    params: list[Any] = field(default_factory=list)


class Query(Fragment, Generic[T]):
    """Fluent query builder for a model.

    Builder methods modify the query in place and return it. Terminal
    methods are coroutines that compile the query for the selected dialect
    and run it on the given connection, or on the transaction when one is
    set.

    A query is also a fragment, so it can be used as a subquery:

    Example:
        >>> groups = use(Group).select("id").filter("name", "LIKE", "admin%")
        >>> accounts = await use(Account).filter("group_id", "IN", groups).sort("-id").all(conn)
    """

    is_expression = True

    def __init__(self, model: Model[T]) -> None:
        self.model = model
        self.config = QueryConfig(table=model.table, fields=model.fields)
        self._dialect: Dialect | None = None

    def __repr__(self) -> str:
        return f"Query({self.model.type.__name__}, table={self.config.table!r})"

    @property
    def selected_dialect(self) -> Dialect:
        """The dialect this query compiles for."""
        return resolve_dialect(self._dialect)

    # ========== Builder ==========

    def filter(self, column: str | Fragment, operator: str, value: Any) -> Query[T]:
        """Add a comparison, joined to earlier filters with AND.

        Example:
            >>> query.filter("age", ">=", 18).filter("name", "LIKE", "a%")
        """
        if self.config.filters:
            self.config.filters.append(AND)
        self.config.filters.append(Q(column, operator, value))
        return self

    def filter_and(self, *clauses: Any) -> Query[T]:
        """Add a bracketed group of clauses joined with AND."""
        if self.config.filters:
            self.config.filters.append(AND)
        self.config.filters.extend(And(*clauses))
        return self

    def filter_or(self, *clauses: Any) -> Query[T]:
        """Add a bracketed group of clauses joined with OR.

        Example:
            >>> query.filter_or(Q("role", "=", "admin"), And(Q("role", "=", "staff"), Q("active", "=", True)))
        """
        if self.config.filters:
            self.config.filters.append(AND)
        self.config.filters.extend(Or(*clauses))
        return self

    def join(self, table: str, *clauses: Any) -> Query[T]:
        """INNER JOIN ``table`` on the given clauses.

        Example:
            >>> query.join("groups", Q(Column("groups.id"), "=", Column("accounts.group_id")))
        """
        return self._join("INNER", table, clauses)

    def join_left(self, table: str, *clauses: Any) -> Query[T]:
        return self._join("LEFT", table, clauses)

    def join_right(self, table: str, *clauses: Any) -> Query[T]:
        return self._join("RIGHT", table, clauses)

    def join_full(self, table: str, *clauses: Any) -> Query[T]:
        return self._join("FULL", table, clauses)

    def _join(self, direction: str, table: str, clauses: tuple[Any, ...]) -> Query[T]:
        self.config.joins.append(JoinClause(direction, table, flatten(clauses)))
        return self

    def sort(self, *columns: str) -> Query[T]:
        """Order by columns, ascending unless prefixed with ``-``. Replaces any earlier sort."""
        self.config.sort = list(columns)
        return self

    def limit(self, limit: int) -> Query[T]:
        self.config.limit = limit
        return self

    def offset(self, offset: int) -> Query[T]:
        self.config.offset = offset
        return self

    def select(self, *columns: str | Fragment) -> Query[T]:
        """Set the selected columns. Fragments such as ``As`` are allowed."""
        self.config.selected = list(columns)
        return self

    def fetch_related(self, *names: str) -> Query[T]:
        """Load the named relation attributes with one extra query each.

        Example:
            >>> accounts = await use(Account).fetch_related("group").all(conn)
            >>> accounts[0].group.row.name
        """
        self.config.fetch_related.extend(names)
        return self

    def dialect(self, dialect: Dialect | None) -> Query[T]:
        """Compile for ``dialect`` instead of the process default."""
        self._dialect = dialect
        return self

    def context(self, context: QueryContext | None) -> Query[T]:
        self.config.context = context
        return self

    def transaction(self, transaction: Connection | None) -> Query[T]:
        """Run every statement, prefetches included, on ``transaction``."""
        self.config.transaction = transaction
        return self

    # ========== Reads ==========

    async def all(self, conn: Connection) -> list[T]:
        """Execute query and return all results."""
        columns, rows = await self._fetch(conn, self.config)
        results = [self.model.scan(values, columns) for values in rows]
        self._check_context()
        if self.config.fetch_related:
            await prefetch(self, results, conn)
        return results

    async def all_to_map(self, conn: Connection) -> list[dict[str, Any]]:
        """Execute query and return every row as a column map."""
        columns, rows = await self._fetch(conn, self.config)
        results = [self.model.scan_to_map(values, columns) for values in rows]
        self._check_context()
        return results

    async def first(self, conn: Connection) -> T:
        """Return the first row. Raises NoRowsError when there is none."""
        self.limit(1)
        results = await self.all(conn)
        if not results:
            raise NoRowsError(f"no rows in result set for table '{self.config.table}'")
        return results[0]

    async def first_to_map(self, conn: Connection) -> dict[str, Any]:
        self.limit(1)
        results = await self.all_to_map(conn)
        if not results:
            raise NoRowsError(f"no rows in result set for table '{self.config.table}'")
        return results[0]

    async def count(self, conn: Connection) -> int:
        """Return count of matching rows."""
        _, rows = await self._fetch(conn, dataclasses.replace(self.config, count=True))
        return int(rows[0][0]) if rows else 0

    async def exists(self, conn: Connection) -> bool:
        """Check if any matching row exists."""
        self.limit(1)
        _, rows = await self._fetch(conn, self.config)
        return bool(rows)

    # ========== Writes ==========

    async def insert(self, conn: Connection, row: T) -> Result:
        """Insert ``row``. A zero primary key is left for the database to assign."""
        return await self.insert_map(conn, self.model.to_map(row))

    async def insert_map(self, conn: Connection, data: dict[str, Any]) -> Result:
        """Insert the column map as given, in its key order."""
        dialect = self.selected_dialect
        sql, args = dialect.build_insert(self.config, data, list(data))
        return await self._execute(conn, sql, args, dialect)

    async def update(self, conn: Connection, row: T, *columns: str) -> Result:
        """Set ``columns`` of matching rows to the values on ``row``.

        Example:
            >>> account.name = "bob"
            >>> await use(Account).filter("id", "=", account.id).update(conn, account, "name")
        """
        if not columns:
            raise QueryError("no columns specified for update")
        dialect = self.selected_dialect
        sql, args = dialect.build_update(self.config, self.model.to_map(row), columns)
        return await self._execute(conn, sql, args, dialect)

    async def update_map(self, conn: Connection, data: dict[str, Any]) -> Result:
        """Set every column in ``data`` on matching rows."""
        if not data:
            raise QueryError("no columns specified for update")
        dialect = self.selected_dialect
        sql, args = dialect.build_update(self.config, data, list(data))
        return await self._execute(conn, sql, args, dialect)

    async def delete(self, conn: Connection) -> Result:
        """Delete all matching rows."""
        dialect = self.selected_dialect
        sql, args = dialect.build_delete(self.config)
        return await self._execute(conn, sql, args, dialect)

    # ========== Schema ==========

    async def table_create(self, conn: Connection, if_not_exists: bool = False) -> Result:
        dialect = self.selected_dialect
        sql = dialect.build_table_create(self.config, if_not_exists=if_not_exists)
        return await self._execute(conn, sql, [], dialect)

    async def table_drop(self, conn: Connection, if_exists: bool = False) -> Result:
        dialect = self.selected_dialect
        sql = dialect.build_table_drop(self.config, if_exists=if_exists)
        return await self._execute(conn, sql, [], dialect)

    async def table_column_add(self, conn: Connection, column: str) -> Result:
        dialect = self.selected_dialect
        return await self._execute(conn, dialect.build_table_column_add(self.config, column), [], dialect)

    async def table_column_drop(self, conn: Connection, column: str) -> Result:
        dialect = self.selected_dialect
        return await self._execute(conn, dialect.build_table_column_drop(self.config, column), [], dialect)

    # ========== SQL ==========

    def to_sql(self, dialect: Dialect | None = None) -> tuple[str, list[Any]]:
        """Compile the SELECT statement without running it."""
        return resolve_dialect(dialect or self._dialect).build_select(self.config)

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        """Render as a subquery, numbering placeholders after ``args``."""
        sql, combined = dialect.build_select(dataclasses.replace(self.config, params=list(args)))
        args.extend(combined[len(args) :])
        return sql

    # ========== Internals ==========

    def _target(self, conn: Connection) -> Connection:
        return self.config.transaction if self.config.transaction is not None else conn

    def _check_context(self) -> None:
        if self.config.context is not None:
            self.config.context.check()

    async def _fetch(
        self, conn: Connection, config: QueryConfig
    ) -> tuple[list[str], list[tuple[Any, ...]]]:
        dialect = self.selected_dialect
        sql, args = dialect.build_select(config)
        return await fetch_all(
            self._target(conn), sql, args, dialect=dialect, context=self.config.context
        )

    async def _execute(self, conn: Connection, sql: str, args: list[Any], dialect: Dialect) -> Result:
        return await execute(self._target(conn), sql, args, dialect=dialect, context=self.config.context)
