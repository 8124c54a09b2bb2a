"""SQL dialects and the process-wide default dialect."""

from __future__ import annotations

from rem.dialects.base import Dialect
from rem.dialects.mysql import MysqlDialect
from rem.dialects.postgres import PostgresDialect
from rem.dialects.sqlite import SqliteDialect
from rem.exceptions import DialectNotConfiguredError

__all__ = [
    "Dialect",
    "MysqlDialect",
    "PostgresDialect",
    "SqliteDialect",
    "dialect_for_url",
    "get_dialect",
    "resolve_dialect",
    "set_dialect",
]

_default_dialect: Dialect | None = None

_SCHEMES: dict[str, type[Dialect]] = {
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "mysql": MysqlDialect,
    "mariadb": MysqlDialect,
    "sqlite": SqliteDialect,
}


def set_dialect(dialect: Dialect | None) -> None:
    """Set the dialect used by queries that do not choose one.

    Call once at startup. Passing ``None`` clears the default.
    """
    global _default_dialect
    _default_dialect = dialect


def get_dialect() -> Dialect | None:
    """Return the process-wide default dialect, if any."""
    return _default_dialect


def resolve_dialect(override: Dialect | None = None) -> Dialect:
    """Return ``override``, else the default dialect.

    Raises:
        DialectNotConfiguredError: Neither is set.
    """
    if override is not None:
        return override
    if _default_dialect is None:
        raise DialectNotConfiguredError()
    return _default_dialect


def dialect_for_url(url: str) -> Dialect:
    """Pick a dialect from a database URL scheme.

    Example:
        >>> dialect_for_url("postgresql://localhost/app")
        PostgresDialect()
        >>> dialect_for_url("sqlite::memory:")
        SqliteDialect()
    """
    scheme = url.split(":", 1)[0].split("+", 1)[0].lower()
    dialect_cls = _SCHEMES.get(scheme)
    if dialect_cls is None:
        raise ValueError(f"Unsupported database URL scheme: {scheme!r}")
    return dialect_cls()
