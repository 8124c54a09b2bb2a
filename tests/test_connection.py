"""Tests for query contexts, connection helpers and URL handling."""

import time

import pytest

from rem import (
    DeadlineExceededError,
    MysqlDialect,
    PostgresDialect,
    QueryCancelledError,
    QueryContext,
    SqliteDialect,
    connect,
    dialect_for_url,
    get_dialect,
)
from rem.connection import AsyncpgConnection, BufferedCursor, _status_rowcount, execute, fetch_all
from rem.engine import _sqlite_path


class TestQueryContext:
    def test_live(self):
        context = QueryContext()
        assert context.err() is None
        assert context.remaining() is None
        context.check()

    def test_cancel(self):
        context = QueryContext(timeout=60)
        context.cancel()
        assert type(context.err()) is QueryCancelledError
        with pytest.raises(QueryCancelledError, match="query cancelled"):
            context.check()

    def test_deadline(self):
        context = QueryContext(timeout=0)
        error = context.err()
        assert isinstance(error, DeadlineExceededError)
        assert isinstance(error, QueryCancelledError)
        assert context.remaining() == 0.0

    def test_remaining(self):
        context = QueryContext(timeout=30)
        assert 0 < context.remaining() <= 30
        assert context.deadline > time.monotonic()


class TestHelpers:
    async def test_execute_closes_cursor(self, stub_conn):
        stub_conn.queue(rowcount=3)
        result = await execute(stub_conn, "DELETE FROM t", [])
        assert result.rowcount == 3
        assert stub_conn.cursors[0].closed

    async def test_fetch_all_binds_with_dialect(self, stub_conn):
        from datetime import datetime

        stub_conn.queue(["a"], [[1], [2]])
        columns, rows = await fetch_all(
            stub_conn, "SELECT a FROM t WHERE b > ?", [datetime(2024, 1, 1)], dialect=SqliteDialect()
        )
        assert columns == ["a"]
        assert rows == [(1,), (2,)]
        assert stub_conn.statements == [("SELECT a FROM t WHERE b > ?", ["2024-01-01 00:00:00"])]

    def test_status_rowcount(self):
        assert _status_rowcount("INSERT 0 3") == 3
        assert _status_rowcount("UPDATE 2") == 2
        assert _status_rowcount("CREATE TABLE") == -1
        assert _status_rowcount(None) == -1

    async def test_buffered_cursor(self):
        cursor = BufferedCursor(["id"], [(1,), (2,), (3,)], 3)
        assert cursor.description[0][0] == "id"
        assert await cursor.fetchone() == (1,)
        assert await cursor.fetchall() == [(2,), (3,)]
        assert await cursor.fetchone() is None


class FakeAttribute:
    def __init__(self, name):
        self.name = name


class FakeStatement:
    def __init__(self, rows, columns, status):
        self.rows = rows
        self.columns = columns
        self.status = status
        self.args = None

    async def fetch(self, *args):
        self.args = args
        return self.rows

    def get_attributes(self):
        return [FakeAttribute(name) for name in self.columns]

    def get_statusmsg(self):
        return self.status


class FakeAsyncpg:
    def __init__(self, statement):
        self.statement = statement
        self.prepared = []

    async def prepare(self, sql):
        self.prepared.append(sql)
        return self.statement


async def test_asyncpg_adapter():
    statement = FakeStatement([(1, "a")], ["id", "name"], "SELECT 1")
    raw = FakeAsyncpg(statement)
    columns, rows = await fetch_all(AsyncpgConnection(raw), "SELECT * FROM t WHERE id = $1", [1])

    assert raw.prepared == ["SELECT * FROM t WHERE id = $1"]
    assert statement.args == (1,)
    assert columns == ["id", "name"]
    assert rows == [(1, "a")]


async def test_asyncpg_adapter_rowcount():
    raw = FakeAsyncpg(FakeStatement([], [], "DELETE 4"))
    result = await execute(AsyncpgConnection(raw), "DELETE FROM t")
    assert result.rowcount == 4


class TestUrls:
    def test_dialect_for_url(self):
        assert isinstance(dialect_for_url("postgresql://localhost/app"), PostgresDialect)
        assert isinstance(dialect_for_url("postgres+asyncpg://localhost/app"), PostgresDialect)
        assert isinstance(dialect_for_url("mysql://localhost/app"), MysqlDialect)
        assert isinstance(dialect_for_url("sqlite::memory:"), SqliteDialect)

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="Unsupported database URL scheme"):
            dialect_for_url("oracle://localhost/app")

    def test_sqlite_path(self):
        assert _sqlite_path("sqlite:///data/app.db") == "data/app.db"
        assert _sqlite_path("sqlite://app.db") == "app.db"
        assert _sqlite_path("sqlite::memory:") == ":memory:"

    async def test_connect_sets_default_dialect(self, sqlite_conn):
        assert isinstance(get_dialect(), SqliteDialect)

    async def test_connect_without_default(self):
        conn = await connect("sqlite::memory:", set_default=False)
        try:
            assert get_dialect() is None
        finally:
            await conn.close()

    async def test_connect_without_driver(self):
        with pytest.raises(ValueError, match="No bundled driver"):
            await connect("mysql://localhost/app")
