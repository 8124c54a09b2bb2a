"""SQLite dialect."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from rem.dialects.base import Dialect

if TYPE_CHECKING:
    from rem.fields import ColumnInfo


class SqliteDialect(Dialect):
    """SQLite: backtick-quoted identifiers and ``?`` placeholders.

    Every integer width is ``INTEGER`` and strings are always ``TEXT``.
    Integer primary keys stay ``INTEGER PRIMARY KEY`` so they alias the
    rowid. DELETE and UPDATE accept ORDER BY and LIMIT but reject OFFSET.
    """

    name = "sqlite"
    quote_char = "`"
    supports_order_limit = True

    column_types = {
        "bool": "BOOLEAN",
        "int8": "INTEGER",
        "int16": "INTEGER",
        "int32": "INTEGER",
        "int64": "INTEGER",
        "float32": "REAL",
        "float64": "REAL",
        "str": "TEXT",
        "datetime": "DATETIME",
    }

    def param(self, index: int) -> str:
        return "?"

    def base_type(self, kind: str, info: ColumnInfo) -> str:
        return self.column_types[kind]

    def bind_value(self, value: Any) -> Any:
        # sqlite3 no longer adapts datetimes by default
        if isinstance(value, datetime):
            return value.isoformat(" ")
        return value
