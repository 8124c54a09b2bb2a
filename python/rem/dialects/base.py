"""Shared SQL compilation for all dialects.

A dialect turns a ``QueryConfig`` into SQL text and an ordered argument
list. Subclasses supply quoting, placeholders, the column type tables and
the clauses they accept on DELETE and UPDATE.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from rem.exceptions import ModelDefinitionError, QueryError, UnsupportedTypeError
from rem.filters import FilterClause, check_brackets
from rem.fragments import Fragment

if TYPE_CHECKING:
    from rem.fields import ColumnInfo
    from rem.query import QueryConfig


class Dialect(ABC):
    """Backend-specific SQL rendering strategy."""

    name: ClassVar[str]
    quote_char: ClassVar[str]

    # DELETE and UPDATE accept ORDER BY and LIMIT. OFFSET is never accepted.
    supports_order_limit: ClassVar[bool] = False

    # kind -> SQL type
    column_types: ClassVar[dict[str, str]]

    # kind -> SQL type for auto-incrementing integer primary keys
    serial_types: ClassVar[dict[str, str]] = {}
    serial_modifier: ClassVar[str] = ""

    # INSERT tail used when no column is given
    empty_insert: ClassVar[str] = " DEFAULT VALUES"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @abstractmethod
    def param(self, index: int) -> str:
        """Placeholder for the ``index``-th (1-based) argument."""

    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier, segment by segment for dotted paths."""
        quote = self.quote_char
        return ".".join(
            quote + part.replace(quote, quote * 2) + quote for part in identifier.split(".")
        )

    def bind_value(self, value: Any) -> Any:
        """Adapt an argument for the driver just before execution."""
        return value

    # ========== Statements ==========

    def build_select(self, config: QueryConfig) -> tuple[str, list[Any]]:
        args = list(config.params)
        sql = [self._build_projection(config, args), self.quote_identifier(config.table)]
        sql.append(self._build_joins(config, args))
        sql.append(self._build_where(config.filters, args))
        sql.append(self._build_order_by(config.sort))

        if config.limit is not None:
            args.append(config.limit)
            sql.append(f" LIMIT {self.param(len(args))}")

        if config.offset is not None:
            args.append(config.offset)
            sql.append(f" OFFSET {self.param(len(args))}")

        return "".join(sql), args

    def build_insert(
        self, config: QueryConfig, row_map: dict[str, Any], columns: Iterable[str]
    ) -> tuple[str, list[Any]]:
        args: list[Any] = []
        names = []
        for column in columns:
            if column not in row_map:
                raise QueryError(f"invalid column '{column}' on INSERT")
            if column not in config.fields:
                raise QueryError(
                    f"field for column '{column}' not found on model for table '{config.table}'"
                )
            args.append(row_map[column])
            names.append(self.quote_identifier(column))

        table = self.quote_identifier(config.table)
        if not names:
            return f"INSERT INTO {table}{self.empty_insert}", args

        placeholders = ",".join(self.param(i) for i in range(1, len(args) + 1))
        return f"INSERT INTO {table} ({','.join(names)}) VALUES ({placeholders})", args

    def build_update(
        self, config: QueryConfig, row_map: dict[str, Any], columns: Iterable[str]
    ) -> tuple[str, list[Any]]:
        args = list(config.params)
        assignments = []
        for column in columns:
            if column not in row_map:
                raise QueryError(f"invalid column '{column}' on UPDATE")
            if column not in config.fields:
                raise QueryError(
                    f"field for column '{column}' not found on model for table '{config.table}'"
                )
            args.append(row_map[column])
            assignments.append(f"{self.quote_identifier(column)} = {self.param(len(args))}")

        if not assignments:
            raise QueryError("no columns specified for update")

        sql = [f"UPDATE {self.quote_identifier(config.table)} SET {','.join(assignments)}"]
        sql.append(self._build_where(config.filters, args))
        sql.append(self._build_order_limit("UPDATE", config, args))
        return "".join(sql), args

    def build_delete(self, config: QueryConfig) -> tuple[str, list[Any]]:
        args = list(config.params)
        sql = [f"DELETE FROM {self.quote_identifier(config.table)}"]
        sql.append(self._build_where(config.filters, args))
        sql.append(self._build_order_limit("DELETE", config, args))
        return "".join(sql), args

    # ========== Schema ==========

    def build_table_create(self, config: QueryConfig, if_not_exists: bool = False) -> str:
        columns = [
            f"\n\t{self.quote_identifier(name)} {self.column_type(config.fields[name])}"
            for name in sorted(config.fields)
        ]
        exists = "IF NOT EXISTS " if if_not_exists else ""
        return f"CREATE TABLE {exists}{self.quote_identifier(config.table)} ({','.join(columns)}\n)"

    def build_table_drop(self, config: QueryConfig, if_exists: bool = False) -> str:
        exists = "IF EXISTS " if if_exists else ""
        return f"DROP TABLE {exists}{self.quote_identifier(config.table)}"

    def build_table_column_add(self, config: QueryConfig, column: str) -> str:
        info = config.fields.get(column)
        if info is None:
            raise QueryError(f"invalid column '{column}' on model for table '{config.table}'")
        return (
            f"ALTER TABLE {self.quote_identifier(config.table)} "
            f"ADD COLUMN {self.quote_identifier(column)} {self.column_type(info)}"
        )

    def build_table_column_drop(self, config: QueryConfig, column: str) -> str:
        return (
            f"ALTER TABLE {self.quote_identifier(config.table)} "
            f"DROP COLUMN {self.quote_identifier(column)}"
        )

    # ========== Column types ==========

    def column_type(self, info: ColumnInfo) -> str:
        """Render the type declaration of a column for CREATE TABLE."""
        if info.db_type:
            return info.db_type

        kind = info.kind
        column_type = ""
        primary = ""
        modifiers = ""

        if info.primary_key:
            primary = " PRIMARY KEY"
            if kind in self.serial_types and not info.nullable:
                column_type = self.serial_types[kind]
                modifiers = " NOT NULL" + self.serial_modifier

        if not column_type:
            if kind == "foreign_key":
                column_type, modifiers = self._foreign_key_type(info)
            elif kind in self.column_types:
                column_type = self.base_type(kind, info)
                modifiers = " NULL" if info.nullable else " NOT NULL"

        if not column_type:
            raise UnsupportedTypeError(
                f"Unsupported column type: {info.type_name}. "
                "Use the 'db_type' column option to define a SQL type"
            )

        if info.server_default:
            modifiers += f" DEFAULT {info.server_default}"
        if info.unique:
            modifiers += " UNIQUE"

        return f"{column_type}{primary}{modifiers}"

    def base_type(self, kind: str, info: ColumnInfo) -> str:
        """SQL type of a plain column, without modifiers."""
        if kind == "str" and info.max_length:
            return f"VARCHAR({info.max_length})"
        return self.column_types[kind]

    def _foreign_key_type(self, info: ColumnInfo) -> tuple[str, str]:
        from rem.model import use

        related = use(info.target_model())
        if related.primary_column is None:
            raise ModelDefinitionError(
                f"relation '{info.attr}' references '{related.type.__name__}', which has no primary key"
            )
        primary = related.fields[related.primary_column]
        if primary.db_type:
            column_type = primary.db_type.split(" ", 1)[0]
        elif primary.kind == "foreign_key":
            column_type = self._foreign_key_type(primary)[0]
        elif primary.kind in self.column_types:
            column_type = self.base_type(primary.kind, primary)
        else:
            raise UnsupportedTypeError(
                f"Unsupported column type: {primary.type_name}. "
                "Use the 'db_type' column option to define a SQL type"
            )

        modifiers = " NULL" if info.nullable else " NOT NULL"
        modifiers += (
            f" REFERENCES {self.quote_identifier(related.table)}"
            f" ({self.quote_identifier(related.primary_column)})"
        )
        if info.on_update:
            modifiers += f" ON UPDATE {info.on_update}"
        if info.on_delete:
            modifiers += f" ON DELETE {info.on_delete}"
        return column_type, modifiers

    # ========== Clauses ==========

    def _build_projection(self, config: QueryConfig, args: list[Any]) -> str:
        if config.count:
            return "SELECT count(*) FROM "
        if not config.selected:
            return "SELECT * FROM "

        columns = []
        for column in config.selected:
            if isinstance(column, str):
                columns.append(self.quote_identifier(column))
            elif isinstance(column, Fragment):
                columns.append(column.render(self, args))
            else:
                raise QueryError(f"invalid column type {column!r}")
        return f"SELECT {','.join(columns)} FROM "

    def _build_joins(self, config: QueryConfig, args: list[Any]) -> str:
        sql = []
        for join in config.joins:
            if not join.on:
                continue
            check_brackets(join.on)
            sql.append(f" {join.direction} JOIN {self.quote_identifier(join.table)} ON")
            sql.extend(clause.render(self, args) for clause in join.on)
        return "".join(sql)

    def _build_where(self, filters: list[FilterClause], args: list[Any]) -> str:
        if not filters:
            return ""
        check_brackets(filters)
        return " WHERE" + "".join(clause.render(self, args) for clause in filters)

    def _build_order_by(self, sort: list[str]) -> str:
        if not sort:
            return ""
        columns = []
        for column in sort:
            if column.startswith("-"):
                columns.append(f"{self.quote_identifier(column[1:])} DESC")
            else:
                columns.append(f"{self.quote_identifier(column)} ASC")
        return " ORDER BY " + ", ".join(columns)

    def _build_order_limit(self, statement: str, config: QueryConfig, args: list[Any]) -> str:
        """ORDER BY and LIMIT for DELETE and UPDATE, where the dialect allows them."""
        sql = ""
        if config.sort:
            if not self.supports_order_limit:
                raise QueryError(f"{statement} does not support ORDER BY")
            sql += self._build_order_by(config.sort)

        if config.limit is not None:
            if not self.supports_order_limit:
                raise QueryError(f"{statement} does not support LIMIT")
            args.append(config.limit)
            sql += f" LIMIT {self.param(len(args))}"

        if config.offset is not None:
            raise QueryError(f"{statement} does not support OFFSET")

        return sql
