"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio

from rem import PostgresDialect, set_dialect


class RecordingConnection:
    """Wraps a connection and records every statement sent through it."""

    def __init__(self, inner):
        self.inner = inner
        self.statements: list[tuple[str, list]] = []

    async def execute(self, sql, parameters=()):
        self.statements.append((sql, list(parameters)))
        return await self.inner.execute(sql, parameters)

    def selects(self) -> list[str]:
        return [sql for sql, _ in self.statements if sql.startswith("SELECT")]


class StubCursor:
    def __init__(self, columns, rows, rowcount=-1):
        self.description = [(name, None, None, None, None, None, None) for name in columns]
        self.rows = rows
        self.rowcount = rowcount
        self.lastrowid = None
        self.closed = False

    async def fetchone(self):
        return self.rows[0] if self.rows else None

    async def fetchall(self):
        return self.rows

    async def close(self):
        self.closed = True


class StubConnection:
    """Returns queued results without a database and records what it was sent."""

    def __init__(self):
        self.statements: list[tuple[str, list]] = []
        self.cursors: list[StubCursor] = []
        self._results: list[tuple[list[str], list[tuple], int]] = []

    def queue(self, columns=(), rows=(), rowcount=-1):
        self._results.append((list(columns), list(rows), rowcount))

    async def execute(self, sql, parameters=()):
        self.statements.append((sql, list(parameters)))
        columns, rows, rowcount = self._results.pop(0) if self._results else ([], [], -1)
        cursor = StubCursor(columns, rows, rowcount)
        self.cursors.append(cursor)
        return cursor


@pytest.fixture(autouse=True)
def reset_dialect():
    """Start every test without a default dialect."""
    set_dialect(None)
    yield
    set_dialect(None)


@pytest.fixture
def postgres():
    """Register PostgreSQL as the default dialect."""
    dialect = PostgresDialect()
    set_dialect(dialect)
    return dialect


@pytest.fixture
def stub_conn():
    return StubConnection()


@pytest_asyncio.fixture
async def sqlite_conn():
    """Open an in-memory SQLite database and make SQLite the default dialect."""
    from rem import connect

    conn = await connect("sqlite::memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def recording_conn(sqlite_conn):
    """SQLite connection that records the statements it runs."""
    return RecordingConnection(sqlite_conn)


@pytest_asyncio.fixture
async def postgres_conn():
    """Create a PostgreSQL connection.

    Set DATABASE_URL environment variable to use a real PostgreSQL database.
    Otherwise, this fixture is skipped.
    """
    from rem import connect

    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")

    conn = await connect(url)
    yield conn
    await conn.close()
