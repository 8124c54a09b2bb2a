"""Model descriptors: table metadata and row mapping for a model class."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from rem.exceptions import QueryError, UnsupportedTypeError
from rem.relationships import ForeignKey, OneToMany

if TYPE_CHECKING:
    from rem.base import Base
    from rem.connection import Connection
    from rem.context import QueryContext
    from rem.dialects.base import Dialect
    from rem.fields import ColumnInfo
    from rem.query import Query

T = TypeVar("T", bound="Base")

_SCALARS = (str, int, float, bool, bytes, Decimal, datetime, date, time)


@dataclass(frozen=True)
class Config:
    """Per-descriptor options passed to ``use``.

    Example:
        >>> archive = use(Account, Config(table="accounts_archive"))
    """

    table: str | None = None


# (model class, configs) -> descriptor. Entries live for the process lifetime.
_descriptors: dict[tuple[type, tuple[Config, ...]], Model[Any]] = {}


def use(model_cls: type[T], *configs: Config) -> Model[T]:
    """Return the cached descriptor of ``model_cls`` for ``configs``.

    The descriptor is built on first use. The table name is the last
    ``Config.table`` given, else the model's ``__tablename__`` (the
    lowercased class name unless declared).
    """
    key = (model_cls, configs)
    model = _descriptors.get(key)
    if model is None:
        table = model_cls.__tablename__
        for config in configs:
            if config.table:
                table = config.table
        model = Model(model_cls, table)
        _descriptors[key] = model
    return model


def register(model_cls: type[T], *configs: Config) -> Model[T]:
    """Build the descriptor eagerly. Same result as ``use``."""
    return use(model_cls, *configs)


class Model(Generic[T]):
    """Table metadata of a model class plus conversions between rows and instances.

    Also exposes the query builder entry points as shortcuts, so
    ``use(Account).filter(...)`` reads like ``use(Account).query().filter(...)``.
    """

    def __init__(self, model_cls: type[T], table: str) -> None:
        self.type = model_cls
        self.table = table
        # column name -> metadata
        self.fields: dict[str, ColumnInfo] = {info.name: info for info in model_cls.__columns__.values()}
        # attribute name -> metadata
        self.one_to_many: dict[str, ColumnInfo] = dict(model_cls.__one_to_many__)
        self.primary_field: str | None = model_cls.__primary_key__
        self.primary_column: str | None = (
            model_cls.__columns__[self.primary_field].name if self.primary_field else None
        )

    def __repr__(self) -> str:
        return f"Model({self.type.__name__}, table={self.table!r})"

    # ========== Row mapping ==========

    def to_map(self, row: T) -> dict[str, Any]:
        """Column values of ``row`` as SQL arguments, keyed by column name.

        Zero-valued primary keys are left out so the database assigns one.
        """
        result: dict[str, Any] = {}
        for column, info in self.fields.items():
            value = getattr(row, info.attr)

            if info.primary_key and not value:
                continue

            if value is None or isinstance(value, _SCALARS):
                result[column] = value
            elif hasattr(value, "to_sql_value"):
                result[column] = value.to_sql_value()
            elif isinstance(value, ForeignKey):
                result[column] = value.row_pk if value.valid else None
            else:
                raise UnsupportedTypeError(
                    f"unsupported field type '{type(value).__name__}' for column '{column}' "
                    f"on table '{self.table}'"
                )
        return result

    def to_json_map(self, row: T) -> dict[str, Any]:
        """``row`` as nested plain data, with loaded relations expanded.

        Columns are keyed by column name and one-to-many relations by
        attribute name.
        """
        result: dict[str, Any] = {}
        for column, info in self.fields.items():
            value = getattr(row, info.attr)
            if isinstance(value, ForeignKey):
                value = value.related_model().to_json_map(value.row) if value.valid else None
            elif hasattr(value, "to_sql_value"):
                value = value.to_sql_value()
            result[column] = value
        for attr in self.one_to_many:
            wrapper = getattr(row, attr)
            result[attr] = [wrapper.related_model().to_json_map(related) for related in wrapper.rows]
        return result

    def scan_to_map(self, values: Sequence[Any], columns: Sequence[str]) -> dict[str, Any]:
        """Pair a driver row with its column names, normalizing each value.

        Foreign key columns are normalized like the referenced primary key.
        """
        result: dict[str, Any] = {}
        for column, value in zip(columns, values):
            info = self.fields.get(column)
            if info is None:
                raise QueryError(f"column '{column}' not found on model '{self.type.__name__}'")
            result[column] = self._coerce(column, info, value)
        return result

    def scan_map(self, data: dict[str, Any]) -> T:
        """Build an instance from column values.

        Every known column in ``data`` is assigned, NULL included, and values
        that do not fit the column type raise ``UnsupportedTypeError``.
        Foreign key columns become wrappers whose row carries the primary
        key. One-to-many wrappers are seeded with the related column and
        this row's primary key.
        """
        row = self.type._blank()
        for column, value in data.items():
            info = self.fields.get(column)
            if info is None:
                continue
            value = self._coerce(column, info, value)
            if info.is_foreign_key:
                if value is not None:
                    getattr(row, info.attr).set_primary_key(value)
            else:
                setattr(row, info.attr, value)

        pk = row.primary_key_value
        for attr, info in self.one_to_many.items():
            setattr(row, attr, OneToMany(column=info, row_pk=pk))
        return row

    def _coerce(self, column: str, info: ColumnInfo, value: Any) -> Any:
        if info.is_foreign_key:
            related = info.target_model()
            if related.__primary_key__ is not None:
                info = related.__columns__[related.__primary_key__]
        try:
            return info.coerce(value)
        except (TypeError, ValueError) as exc:
            raise UnsupportedTypeError(
                f"cannot scan {type(value).__name__} value {value!r} into column '{column}' "
                f"of type {info.type_name} on table '{self.table}'"
            ) from exc

    def scan(self, values: Sequence[Any], columns: Sequence[str]) -> T:
        """``scan_map`` of ``scan_to_map``."""
        return self.scan_map(self.scan_to_map(values, columns))

    # ========== Raw SQL ==========

    async def sql_all(self, conn: Connection, sql: str, *args: Any) -> list[T]:
        """Run caller-written SQL and scan every row into an instance."""
        from rem.connection import fetch_all

        columns, rows = await fetch_all(conn, sql, args)
        return [self.scan(values, columns) for values in rows]

    async def sql_all_to_map(self, conn: Connection, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Run caller-written SQL and return every row as a column map."""
        from rem.connection import fetch_all

        columns, rows = await fetch_all(conn, sql, args)
        return [self.scan_to_map(values, columns) for values in rows]

    # ========== Query shortcuts ==========

    def query(self) -> Query[T]:
        from rem.query import Query

        return Query(self)

    def filter(self, column: Any, operator: str, value: Any) -> Query[T]:
        return self.query().filter(column, operator, value)

    def filter_and(self, *clauses: Any) -> Query[T]:
        return self.query().filter_and(*clauses)

    def filter_or(self, *clauses: Any) -> Query[T]:
        return self.query().filter_or(*clauses)

    def select(self, *columns: Any) -> Query[T]:
        return self.query().select(*columns)

    def sort(self, *columns: str) -> Query[T]:
        return self.query().sort(*columns)

    def fetch_related(self, *names: str) -> Query[T]:
        return self.query().fetch_related(*names)

    def dialect(self, dialect: Dialect) -> Query[T]:
        return self.query().dialect(dialect)

    def context(self, context: QueryContext) -> Query[T]:
        return self.query().context(context)

    def transaction(self, transaction: Connection) -> Query[T]:
        return self.query().transaction(transaction)

    async def all(self, conn: Connection) -> list[T]:
        return await self.query().all(conn)

    async def all_to_map(self, conn: Connection) -> list[dict[str, Any]]:
        return await self.query().all_to_map(conn)

    async def count(self, conn: Connection) -> int:
        return await self.query().count(conn)

    async def insert(self, conn: Connection, row: T) -> Any:
        return await self.query().insert(conn, row)

    async def insert_map(self, conn: Connection, data: dict[str, Any]) -> Any:
        return await self.query().insert_map(conn, data)

    async def table_create(self, conn: Connection, if_not_exists: bool = False) -> Any:
        return await self.query().table_create(conn, if_not_exists=if_not_exists)

    async def table_drop(self, conn: Connection, if_exists: bool = False) -> Any:
        return await self.query().table_drop(conn, if_exists=if_exists)

    async def table_column_add(self, conn: Connection, column: str) -> Any:
        return await self.query().table_column_add(conn, column)

    async def table_column_drop(self, conn: Connection, column: str) -> Any:
        return await self.query().table_column_drop(conn, column)
