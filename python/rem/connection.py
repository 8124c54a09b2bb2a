"""The database connection surface rem executes statements through.

rem does not own connections. Anything shaped like an ``aiosqlite``
connection works: ``await conn.execute(sql, params)`` returns a cursor with
``description``, ``rowcount``, ``lastrowid`` and async ``fetchone``,
``fetchall`` and ``close``. ``AsyncpgConnection`` gives an ``asyncpg``
connection that shape.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from rem.exceptions import DeadlineExceededError

if TYPE_CHECKING:
    from rem.context import QueryContext
    from rem.dialects.base import Dialect

logger = logging.getLogger("rem.query")

R = TypeVar("R")


class Cursor(Protocol):
    description: Any
    rowcount: int
    lastrowid: int | None

    async def fetchone(self) -> Any: ...

    async def fetchall(self) -> Any: ...

    async def close(self) -> None: ...


class Connection(Protocol):
    async def execute(self, sql: str, parameters: Sequence[Any] = ...) -> Cursor: ...


@dataclass
class Result:
    """Outcome of a statement that returns no rows."""

    rowcount: int
    lastrowid: int | None = None


# ========== Execution helpers ==========


async def _bounded(awaitable: Awaitable[R], context: QueryContext | None) -> R:
    timeout = context.remaining() if context is not None else None
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError as exc:
        raise DeadlineExceededError("query deadline exceeded") from exc


async def _send(
    conn: Connection,
    sql: str,
    args: Sequence[Any],
    dialect: Dialect | None,
    context: QueryContext | None,
) -> Cursor:
    if context is not None:
        context.check()
    params = [dialect.bind_value(arg) for arg in args] if dialect is not None else list(args)
    logger.debug("%s %r", sql, params)
    return await _bounded(conn.execute(sql, params), context)


async def execute(
    conn: Connection,
    sql: str,
    args: Sequence[Any] = (),
    *,
    dialect: Dialect | None = None,
    context: QueryContext | None = None,
) -> Result:
    """Run a statement and report the affected row count."""
    cursor = await _send(conn, sql, args, dialect, context)
    try:
        return Result(cursor.rowcount, cursor.lastrowid)
    finally:
        await cursor.close()


async def fetch_all(
    conn: Connection,
    sql: str,
    args: Sequence[Any] = (),
    *,
    dialect: Dialect | None = None,
    context: QueryContext | None = None,
) -> tuple[list[str], list[tuple[Any, ...]]]:
    """Run a query and return its column names and every row."""
    cursor = await _send(conn, sql, args, dialect, context)
    try:
        columns = [column[0] for column in cursor.description or ()]
        rows = await _bounded(cursor.fetchall(), context)
        return columns, [tuple(row) for row in rows]
    finally:
        await cursor.close()


# ========== asyncpg ==========


class BufferedCursor:
    """A cursor over rows that were already fetched."""

    def __init__(self, columns: list[str], rows: list[tuple[Any, ...]], rowcount: int) -> None:
        self.description = [(name, None, None, None, None, None, None) for name in columns]
        self.rowcount = rowcount
        self.lastrowid = None
        self._rows = rows
        self._position = 0

    async def fetchone(self) -> tuple[Any, ...] | None:
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    async def fetchall(self) -> list[tuple[Any, ...]]:
        rows = self._rows[self._position :]
        self._position = len(self._rows)
        return rows

    async def close(self) -> None:
        self._rows = []


def _status_rowcount(status: str | None) -> int:
    # "INSERT 0 3", "UPDATE 2", "SELECT 5", "CREATE TABLE"
    last = (status or "").rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else -1


class AsyncpgConnection:
    """Adapts an ``asyncpg`` connection to the cursor-returning interface.

    Example:
        >>> raw = await asyncpg.connect("postgresql://localhost/app")
        >>> conn = AsyncpgConnection(raw)
        >>> async with conn.transaction():
        ...     await use(Account).insert(conn, account)
    """

    def __init__(self, raw: Any) -> None:
        self.raw = raw

    async def execute(self, sql: str, parameters: Sequence[Any] = ()) -> BufferedCursor:
        statement = await self.raw.prepare(sql)
        rows = await statement.fetch(*parameters)
        columns = [attribute.name for attribute in statement.get_attributes()]
        return BufferedCursor(
            columns,
            [tuple(row) for row in rows],
            _status_rowcount(statement.get_statusmsg()),
        )

    def transaction(self) -> Any:
        """The driver's transaction context manager."""
        return self.raw.transaction()

    async def close(self) -> None:
        await self.raw.close()
