"""MySQL dialect."""

from __future__ import annotations

from rem.dialects.base import Dialect


class MysqlDialect(Dialect):
    """MySQL: backtick-quoted identifiers and ``?`` placeholders.

    DELETE and UPDATE accept ORDER BY and LIMIT but reject OFFSET.
    """

    name = "mysql"
    quote_char = "`"
    supports_order_limit = True
    empty_insert = " () VALUES ()"

    column_types = {
        "bool": "BOOLEAN",
        "int8": "TINYINT",
        "int16": "SMALLINT",
        "int32": "INTEGER",
        "int64": "BIGINT",
        "float32": "FLOAT",
        "float64": "DOUBLE",
        "str": "TEXT",
        "datetime": "DATETIME",
    }
    serial_types = {
        "int8": "TINYINT",
        "int16": "SMALLINT",
        "int32": "INTEGER",
        "int64": "BIGINT",
    }
    serial_modifier = " AUTO_INCREMENT"

    def param(self, index: int) -> str:
        return "?"
