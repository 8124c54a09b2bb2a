"""rem - a multi-dialect async ORM with a linear migration runner."""

from __future__ import annotations

from rem.base import Base
from rem.connection import AsyncpgConnection, Connection, Result
from rem.context import QueryContext
from rem.dialects import (
    Dialect,
    MysqlDialect,
    PostgresDialect,
    SqliteDialect,
    dialect_for_url,
    get_dialect,
    set_dialect,
)
from rem.engine import connect
from rem.exceptions import (
    DeadlineExceededError,
    DialectNotConfiguredError,
    FilterError,
    MigrationError,
    ModelDefinitionError,
    NoRowsError,
    QueryCancelledError,
    QueryError,
    RemError,
    UnsupportedTypeError,
)
from rem.fields import Float32, Float64, Int8, Int16, Int32, Int64, Mapped, mapped_column
from rem.filters import SKIP, And, Exists, FilterClause, NotExists, Or, Q
from rem.fragments import As, Column, Param, Sql, Unsafe
from rem.model import Config, Model, register, use
from rem.query import Query
from rem.relationships import ForeignKey, NullForeignKey, OneToMany
from rem.migrations import Migration, MigrationLogs, MigrationRunner, migrate_down, migrate_up

__version__ = "0.1.0"

__all__ = [
    # Core
    "connect",
    "Connection",
    "AsyncpgConnection",
    "Result",
    "QueryContext",
    "Query",
    # Model definition
    "Base",
    "Mapped",
    "mapped_column",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Float32",
    "Float64",
    "ForeignKey",
    "NullForeignKey",
    "OneToMany",
    "Model",
    "Config",
    "use",
    "register",
    # Query building
    "Q",
    "And",
    "Or",
    "Exists",
    "NotExists",
    "SKIP",
    "FilterClause",
    "Unsafe",
    "Column",
    "As",
    "Sql",
    "Param",
    # Dialects
    "Dialect",
    "PostgresDialect",
    "MysqlDialect",
    "SqliteDialect",
    "set_dialect",
    "get_dialect",
    "dialect_for_url",
    # Migrations
    "Migration",
    "MigrationLogs",
    "MigrationRunner",
    "migrate_up",
    "migrate_down",
    # Errors
    "RemError",
    "FilterError",
    "QueryError",
    "UnsupportedTypeError",
    "ModelDefinitionError",
    "NoRowsError",
    "DialectNotConfiguredError",
    "QueryCancelledError",
    "DeadlineExceededError",
    "MigrationError",
]
