"""PostgreSQL dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rem.dialects.base import Dialect

if TYPE_CHECKING:
    from rem.fields import ColumnInfo


class PostgresDialect(Dialect):
    """PostgreSQL: double-quoted identifiers and ``$N`` placeholders.

    DELETE and UPDATE reject ORDER BY, LIMIT and OFFSET.
    """

    name = "postgresql"
    quote_char = '"'
    supports_order_limit = False

    column_types = {
        "bool": "BOOLEAN",
        "int8": "SMALLINT",
        "int16": "SMALLINT",
        "int32": "INTEGER",
        "int64": "BIGINT",
        "float32": "REAL",
        "float64": "DOUBLE PRECISION",
        "str": "TEXT",
        "datetime": "TIMESTAMP WITHOUT TIME ZONE",
    }
    serial_types = {
        "int8": "SMALLSERIAL",
        "int16": "SMALLSERIAL",
        "int32": "SERIAL",
        "int64": "BIGSERIAL",
    }

    def param(self, index: int) -> str:
        return f"${index}"

    def base_type(self, kind: str, info: ColumnInfo) -> str:
        if kind == "datetime" and info.time_zone:
            return "TIMESTAMP WITH TIME ZONE"
        return super().base_type(kind, info)
