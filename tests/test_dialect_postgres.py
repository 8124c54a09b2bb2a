"""Tests for PostgreSQL SQL generation."""

from datetime import datetime

import pytest

from rem import (
    And,
    As,
    Base,
    Column,
    ForeignKey,
    Int16,
    Int32,
    Mapped,
    NullForeignKey,
    Or,
    Param,
    PostgresDialect,
    Q,
    QueryError,
    Sql,
    Unsafe,
    UnsupportedTypeError,
    mapped_column,
    use,
)


class PgModel(Base):
    __tablename__ = "testmodel"

    id: Mapped[int] = mapped_column("test_id", primary_key=True)
    value1: Mapped[str] = mapped_column("test_value_1", max_length=100)
    value2: Mapped[str] = mapped_column("test_value_2", max_length=100)


class PgGroup(Base):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str]


class PgFkInt(Base):
    id: Mapped[int] = mapped_column(primary_key=True)


class PgFkString(Base):
    id: Mapped[str] = mapped_column(primary_key=True, max_length=100)


class PgColumnTypes(Base):
    big_int: Mapped[int] = mapped_column("test_big_int")
    big_int_null: Mapped[int | None] = mapped_column("test_big_int_null")
    flag: Mapped[bool] = mapped_column("test_bool")
    flag_null: Mapped[bool | None] = mapped_column("test_bool_null")
    custom: Mapped[bytes] = mapped_column("test_custom", db_type="JSONB NOT NULL")
    default: Mapped[str] = mapped_column("test_default", server_default="'foo'", max_length=100)
    number: Mapped[float] = mapped_column("test_float")
    number_null: Mapped[float | None] = mapped_column("test_float_null")
    id: Mapped[int] = mapped_column("test_id", primary_key=True)
    integer: Mapped[Int32] = mapped_column("test_int")
    integer_null: Mapped[Int32 | None] = mapped_column("test_int_null")
    small_int: Mapped[Int16] = mapped_column("test_small_int")
    small_int_null: Mapped[Int16 | None] = mapped_column("test_small_int_null")
    text: Mapped[str] = mapped_column("test_text")
    text_null: Mapped[str | None] = mapped_column("test_text_null")
    time: Mapped[datetime] = mapped_column("test_time")
    time_now: Mapped[datetime] = mapped_column("test_time_now", server_default="now()")
    time_null: Mapped[datetime | None] = mapped_column("test_time_null")
    time_zone: Mapped[datetime] = mapped_column("test_time_zone", time_zone=True)
    varchar: Mapped[str] = mapped_column("test_varchar", max_length=100)
    varchar_null: Mapped[str | None] = mapped_column("test_varchar_null", max_length=50)
    fk: Mapped[ForeignKey[PgFkString]] = mapped_column("test_fk_id", on_delete="CASCADE", on_update="CASCADE")
    fk_null: Mapped[NullForeignKey[PgFkInt]] = mapped_column("test_fk_null_id", on_delete="SET NULL")
    unique: Mapped[str] = mapped_column("test_unique", max_length=255, unique=True)


@pytest.fixture
def dialect():
    return PostgresDialect()


class TestSelect:
    def test_select_all(self, dialect):
        assert use(PgModel).query().to_sql(dialect) == ('SELECT * FROM "testmodel"', [])

    def test_selected_columns(self, dialect):
        query = use(PgModel).select("id", "value1", Unsafe('count(1) as "count"'), As("value2", "value3"))
        assert query.to_sql(dialect) == (
            'SELECT "id","value1",count(1) as "count","value2" AS "value3" FROM "testmodel"',
            [],
        )

    def test_where(self, dialect):
        assert use(PgModel).filter("id", "=", 1).to_sql(dialect) == ('SELECT * FROM "testmodel" WHERE "id" = $1', [1])

    def test_where_custom_sql(self, dialect):
        query = use(PgModel).filter("id", "IN", Sql(Param(1), ",", Param(2)))
        assert query.to_sql(dialect) == ('SELECT * FROM "testmodel" WHERE "id" IN ($1,$2)', [1, 2])

    def test_join(self, dialect):
        query = use(PgModel).select(Unsafe("*")).join(
            "groups",
            Or(Q("groups.id", "=", Column("accounts.group_id")), Q("groups.id", "IS", None)),
        )
        assert query.to_sql(dialect) == (
            'SELECT * FROM "testmodel" INNER JOIN "groups" ON ( "groups"."id" = "accounts"."group_id" '
            'OR "groups"."id" IS NULL )',
            [],
        )

    def test_join_directions(self, dialect):
        query = (
            use(PgModel)
            .join_left("a", Q("a.id", "=", Column("testmodel.test_id")))
            .join_right("b", Q("b.id", "=", 1))
            .join_full("c", Q("c.id", "=", 2))
        )
        assert query.to_sql(dialect) == (
            'SELECT * FROM "testmodel" LEFT JOIN "a" ON "a"."id" = "testmodel"."test_id"'
            ' RIGHT JOIN "b" ON "b"."id" = $1 FULL JOIN "c" ON "c"."id" = $2',
            [1, 2],
        )

    def test_sort(self, dialect):
        query = use(PgModel).sort("test_id", "-test_value_1")
        assert query.to_sql(dialect) == ('SELECT * FROM "testmodel" ORDER BY "test_id" ASC, "test_value_1" DESC', [])

    def test_sort_replaces_earlier_sort(self, dialect):
        query = use(PgModel).sort("test_id").sort("-test_value_1")
        assert query.to_sql(dialect) == ('SELECT * FROM "testmodel" ORDER BY "test_value_1" DESC', [])

    def test_select_replaces_earlier_columns(self, dialect):
        query = use(PgModel).select("id", "value1").select("value2")
        assert query.to_sql(dialect) == ('SELECT "value2" FROM "testmodel"', [])

    def test_identical_builders_render_identically(self, dialect):
        def build():
            groups = use(PgGroup).select("id").filter("name", "=", "admins")
            return (
                use(PgModel)
                .join_left("pggroup", Q("pggroup.id", "=", Column("testmodel.test_id")))
                .filter("test_value_1", "=", "a")
                .filter_or(Q("test_id", "<", 5), And(Q("test_value_2", "LIKE", "b%"), Q("test_id", ">", 10)))
                .filter("test_id", "IN", groups)
                .sort("-test_id")
                .limit(10)
                .offset(20)
                .to_sql(dialect)
            )

        first = build()
        assert first == build()
        assert first[1] == ["a", 5, "b%", 10, "admins", 10, 20]

    def test_limit_and_offset(self, dialect):
        query = use(PgModel).filter("id", "=", 1).offset(20).limit(10)
        assert query.to_sql(dialect) == ('SELECT * FROM "testmodel" WHERE "id" = $1 LIMIT $2 OFFSET $3', [1, 10, 20])

    def test_filters_are_joined_with_and(self, dialect):
        query = (
            use(PgModel)
            .filter("test_value_1", "=", "a")
            .filter_or(Q("test_id", "<", 5), Q("test_id", ">", 10))
            .filter_and(Q("test_value_2", "LIKE", "b%"))
        )
        assert query.to_sql(dialect) == (
            'SELECT * FROM "testmodel" WHERE "test_value_1" = $1 AND ( "test_id" < $2 OR "test_id" > $3 )'
            ' AND ( "test_value_2" LIKE $4 )',
            ["a", 5, 10, "b%"],
        )

    def test_subquery(self, dialect):
        groups = use(PgGroup).select("id").filter("name", "=", "admins")
        query = use(PgModel).filter("test_value_1", "=", "a").filter("test_id", "IN", groups)
        assert query.to_sql(dialect) == (
            'SELECT * FROM "testmodel" WHERE "test_value_1" = $1 AND "test_id" IN '
            '(SELECT "id" FROM "pggroup" WHERE "name" = $2)',
            ["a", "admins"],
        )

    def test_subquery_is_not_modified_by_rendering(self, dialect):
        groups = use(PgGroup).select("id").filter("name", "=", "admins")
        use(PgModel).filter("test_value_1", "=", "a").filter("test_id", "IN", groups).to_sql(dialect)
        assert groups.to_sql(dialect) == ('SELECT "id" FROM "pggroup" WHERE "name" = $1', ["admins"])

    def test_exists_subquery(self, dialect):
        groups = use(PgGroup).select(Unsafe("1")).filter("id", "=", Column("testmodel.test_id"))
        query = use(PgModel).filter_and(Q("test_value_1", "=", "a")).filter_and(Q("", "EXISTS", groups))
        sql, args = query.to_sql(dialect)
        assert sql.endswith(' AND ( EXISTS (SELECT 1 FROM "pggroup" WHERE "id" = "testmodel"."test_id") )')
        assert args == ["a"]

    def test_unbalanced_filters_are_rejected(self, dialect):
        from rem import FilterError
        from rem.filters import OPEN

        query = use(PgModel).filter("id", "=", 1)
        query.config.filters.append(OPEN)
        with pytest.raises(FilterError):
            query.to_sql(dialect)


class TestWrite:
    def test_insert(self, dialect):
        config = use(PgModel).query().config
        sql, args = dialect.build_insert(
            config, {"test_value_1": "foo", "test_value_2": "bar"}, ["test_value_1", "test_value_2"]
        )
        assert sql == 'INSERT INTO "testmodel" ("test_value_1","test_value_2") VALUES ($1,$2)'
        assert args == ["foo", "bar"]

    def test_insert_without_columns(self, dialect):
        assert dialect.build_insert(use(PgModel).query().config, {}, []) == ('INSERT INTO "testmodel" DEFAULT VALUES', [])

    def test_insert_unknown_column(self, dialect):
        config = use(PgModel).query().config
        with pytest.raises(QueryError, match="invalid column 'nope' on INSERT"):
            dialect.build_insert(config, {"test_value_1": "foo"}, ["nope"])
        with pytest.raises(QueryError, match="field for column 'nope' not found"):
            dialect.build_insert(config, {"nope": "foo"}, ["nope"])

    def test_update(self, dialect):
        config = use(PgModel).filter("test_id", "=", 1).config
        sql, args = dialect.build_update(
            config,
            {"id": 123, "test_value_1": "foo", "test_value_2": "bar"},
            ["test_value_1", "test_value_2"],
        )
        assert sql == 'UPDATE "testmodel" SET "test_value_1" = $1,"test_value_2" = $2 WHERE "test_id" = $3'
        assert args == ["foo", "bar", 1]

    def test_update_without_columns(self, dialect):
        with pytest.raises(QueryError, match="no columns specified for update"):
            dialect.build_update(use(PgModel).query().config, {"test_value_1": "foo"}, [])

    def test_update_rejects_order_and_limit(self, dialect):
        row = {"test_value_1": "foo"}
        with pytest.raises(QueryError):
            dialect.build_update(use(PgModel).sort("test_id").config, row, ["test_value_1"])
        with pytest.raises(QueryError):
            dialect.build_update(use(PgModel).query().limit(1).config, row, ["test_value_1"])
        with pytest.raises(QueryError):
            dialect.build_update(use(PgModel).query().offset(1).config, row, ["test_value_1"])

    def test_delete(self, dialect):
        assert dialect.build_delete(use(PgModel).query().config) == ('DELETE FROM "testmodel"', [])
        assert dialect.build_delete(use(PgModel).filter("test_id", "=", 1).config) == (
            'DELETE FROM "testmodel" WHERE "test_id" = $1',
            [1],
        )

    def test_delete_rejects_order_limit_offset(self, dialect):
        for query in (
            use(PgModel).sort("test_id"),
            use(PgModel).query().limit(1),
            use(PgModel).query().offset(1),
        ):
            with pytest.raises(QueryError):
                dialect.build_delete(query.config)


class TestSchema:
    def test_table_create(self, dialect):
        class PgCreate(Base):
            __tablename__ = "testmodel"

            id: Mapped[int] = mapped_column("test_id", primary_key=True)
            value1: Mapped[str] = mapped_column("test_value_1", max_length=100)

        config = use(PgCreate).query().config
        assert dialect.build_table_create(config) == (
            'CREATE TABLE "testmodel" (\n'
            '\t"test_id" BIGSERIAL PRIMARY KEY NOT NULL,\n'
            '\t"test_value_1" VARCHAR(100) NOT NULL\n'
            ")"
        )
        assert dialect.build_table_create(config, if_not_exists=True).startswith('CREATE TABLE IF NOT EXISTS "testmodel" (')

    def test_table_drop(self, dialect):
        config = use(PgModel).query().config
        assert dialect.build_table_drop(config) == 'DROP TABLE "testmodel"'
        assert dialect.build_table_drop(config, if_exists=True) == 'DROP TABLE IF EXISTS "testmodel"'

    def test_table_column_add(self, dialect):
        config = use(PgModel).query().config
        assert (
            dialect.build_table_column_add(config, "test_value_1")
            == 'ALTER TABLE "testmodel" ADD COLUMN "test_value_1" VARCHAR(100) NOT NULL'
        )
        with pytest.raises(QueryError):
            dialect.build_table_column_add(config, "missing")

    def test_table_column_drop(self, dialect):
        config = use(PgModel).query().config
        assert dialect.build_table_column_drop(config, "test_value") == 'ALTER TABLE "testmodel" DROP COLUMN "test_value"'

    def test_column_types(self, dialect):
        expected = {
            "test_big_int": "BIGINT NOT NULL",
            "test_big_int_null": "BIGINT NULL",
            "test_bool": "BOOLEAN NOT NULL",
            "test_bool_null": "BOOLEAN NULL",
            "test_custom": "JSONB NOT NULL",
            "test_default": "VARCHAR(100) NOT NULL DEFAULT 'foo'",
            "test_float": "DOUBLE PRECISION NOT NULL",
            "test_float_null": "DOUBLE PRECISION NULL",
            "test_id": "BIGSERIAL PRIMARY KEY NOT NULL",
            "test_int": "INTEGER NOT NULL",
            "test_int_null": "INTEGER NULL",
            "test_small_int": "SMALLINT NOT NULL",
            "test_small_int_null": "SMALLINT NULL",
            "test_time": "TIMESTAMP WITHOUT TIME ZONE NOT NULL",
            "test_time_now": "TIMESTAMP WITHOUT TIME ZONE NOT NULL DEFAULT now()",
            "test_time_null": "TIMESTAMP WITHOUT TIME ZONE NULL",
            "test_time_zone": "TIMESTAMP WITH TIME ZONE NOT NULL",
            "test_text": "TEXT NOT NULL",
            "test_text_null": "TEXT NULL",
            "test_varchar": "VARCHAR(100) NOT NULL",
            "test_varchar_null": "VARCHAR(50) NULL",
            "test_fk_id": 'VARCHAR(100) NOT NULL REFERENCES "pgfkstring" ("id") ON UPDATE CASCADE ON DELETE CASCADE',
            "test_fk_null_id": 'BIGINT NULL REFERENCES "pgfkint" ("id") ON DELETE SET NULL',
            "test_unique": "VARCHAR(255) NOT NULL UNIQUE",
        }
        fields = use(PgColumnTypes).fields
        assert sorted(fields) == sorted(expected)
        for column, info in fields.items():
            assert dialect.column_type(info) == expected[column], column

    def test_unsupported_column_type(self, dialect):
        class PgUnsupported(Base):
            tags: Mapped[list]

        with pytest.raises(UnsupportedTypeError, match="Unsupported column type: list"):
            dialect.column_type(use(PgUnsupported).fields["tags"])
