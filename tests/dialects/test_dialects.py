"""Tests for dialect capabilities and statement templates."""

import pytest

from schemaforge.dialects import (
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
    SQLServerDialect,
    get_dialect,
    get_supported_dialects,
)
from schemaforge.errors import UnsupportedOperation
from schemaforge.interfaces import DriverResult
from schemaforge.naming import DefaultNamingStrategy
from schemaforge.schema import Column, Index, Table, View
from schemaforge.types import GenerationStrategy, IsolationLevel

naming = DefaultNamingStrategy()


class TestRegistry:
    """Test dialect lookup by name and alias."""

    def test_supported_dialects(self) -> None:
        assert get_supported_dialects() == ["mssql", "mysql", "postgres", "sqlite"]

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("postgres", PostgresDialect),
            ("PostgreSQL", PostgresDialect),
            ("mariadb", MySQLDialect),
            ("sqlserver", SQLServerDialect),
            ("sqlite3", SQLiteDialect),
        ],
    )
    def test_aliases(self, name, expected) -> None:
        assert isinstance(get_dialect(name), expected)

    def test_unknown_dialect(self) -> None:
        with pytest.raises(KeyError, match="Dialect not found: oracle"):
            get_dialect("oracle")

    def test_constructor_arguments(self) -> None:
        dialect = get_dialect("postgres", schema="app")

        assert dialect.schema == "app"
        assert dialect.escape_path("users") == '"app"."users"'


class TestIdentifiers:
    """Test quoting, literals and qualified names."""

    def test_escape(self) -> None:
        assert PostgresDialect().escape('we"ird') == '"we""ird"'
        assert MySQLDialect().escape("we`ird") == "`we``ird`"

    def test_escape_path(self) -> None:
        dialect = SQLServerDialect()

        assert dialect.escape_path("db.dbo.users") == '"db"."dbo"."users"'
        assert dialect.path_prefix("db.dbo.users") == "db.dbo"
        assert dialect.with_table_name("db.dbo.users", "members") == "db.dbo.members"
        assert dialect.table_name_only("db.dbo.users") == "users"
        assert dialect.path_prefix("users") is None

    def test_literal(self) -> None:
        dialect = PostgresDialect()

        assert dialect.literal(None) == "NULL"
        assert dialect.literal(True) == "TRUE"
        assert dialect.literal(3) == "3"
        assert dialect.literal("it's") == "'it''s'"
        assert dialect.escape_comment(None) == "NULL"
        assert dialect.escape_comment("a\u0000b") == "'ab'"

    def test_full_type(self) -> None:
        dialect = PostgresDialect()

        assert dialect.full_type(Column(name="a", type="varchar", length="40")) == "varchar(40)"
        assert dialect.full_type(Column(name="a", type="numeric", precision=8, scale=2)) == "numeric(8,2)"
        assert dialect.full_type(Column(name="a", type="float", precision=24)) == "float(24)"
        assert dialect.full_type(Column(name="a", type="int", is_array=True)) == "int array"


class TestColumnSql:
    """Test column definition fragments per dialect."""

    def test_postgres(self) -> None:
        dialect = PostgresDialect()
        table = Table(name="blog.posts")

        serial = Column(name="id", type="integer", generation_strategy=GenerationStrategy.INCREMENT)
        tags = Column(name="tags", type="enum", enum=("a", "b"), is_array=True, is_nullable=True)
        key = Column(name="key", type="uuid", generation_strategy=GenerationStrategy.UUID)
        location = Column(
            name="loc", type="geometry", spatial_feature_type="Point", srid=4326, is_nullable=True
        )

        assert dialect.column_sql(table, serial) == '"id" SERIAL NOT NULL'
        assert dialect.column_sql(table, tags) == '"tags" "blog"."posts_tags_enum"[]'
        assert dialect.column_sql(table, key) == '"key" uuid NOT NULL DEFAULT uuid_generate_v4()'
        assert dialect.column_sql(table, location) == '"loc" geometry(Point,4326)'

    def test_mysql(self) -> None:
        dialect = MySQLDialect()
        table = Table(name="orders")

        price = Column(name="price", type="decimal", precision=10, scale=2, default="0")
        key = Column(
            name="id",
            type="int",
            is_primary=True,
            generation_strategy=GenerationStrategy.INCREMENT,
        )
        status = Column(name="status", type="enum", enum=("a", "b"), comment="it's")

        assert dialect.column_sql(table, price) == "`price` decimal(10,2) NOT NULL DEFAULT 0"
        assert (
            dialect.column_sql(table, key, skip_primary=False)
            == "`id` int NOT NULL PRIMARY KEY AUTO_INCREMENT"
        )
        assert dialect.column_sql(table, key, skip_identity=True) == "`id` int NOT NULL"
        assert (
            dialect.column_sql(table, status)
            == "`status` enum('a','b') NOT NULL COMMENT 'it''s'"
        )

    def test_sqlserver(self) -> None:
        dialect = SQLServerDialect()
        table = Table(name="jobs")

        identity = Column(name="id", type="int", generation_strategy=GenerationStrategy.INCREMENT)
        state = Column(name="state", type="enum", enum=("open", "done"), default="'open'")
        total = Column(name="total", type="int", as_expression="[a]+[b]", generated_type="STORED")

        expression = "\"state\" IN ('open','done')"
        check_name = naming.check_constraint_name(table, expression, is_enum=True)
        default_name = naming.default_constraint_name(table, "state")

        assert check_name.endswith("_ENUM")
        assert dialect.column_sql(table, identity) == '"id" int NOT NULL IDENTITY(1,1)'
        assert dialect.column_sql(table, state) == (
            f'"state" nvarchar(255) CONSTRAINT "{check_name}" CHECK({expression}) '
            f"NOT NULL CONSTRAINT \"{default_name}\" DEFAULT 'open'"
        )
        assert dialect.column_sql(table, total) == '"total" AS ([a]+[b]) PERSISTED NOT NULL'

    def test_sqlite(self) -> None:
        dialect = SQLiteDialect()
        table = Table(name="items")

        key = Column(
            name="id",
            type="integer",
            is_primary=True,
            generation_strategy=GenerationStrategy.INCREMENT,
        )
        kind = Column(name="kind", type="enum", enum=("x", "y"), default="'x'")

        assert (
            dialect.column_sql(table, key, skip_primary=False)
            == '"id" integer PRIMARY KEY AUTOINCREMENT NOT NULL'
        )
        assert (
            dialect.column_sql(table, kind)
            == "\"kind\" varchar CHECK( \"kind\" IN ('x','y') ) NOT NULL DEFAULT ('x')"
        )


class TestColumnChanges:
    """Test in-place versus destructive column changes."""

    def test_requires_column_recreate(self) -> None:
        dialect = PostgresDialect()
        base = Column(name="a", type="varchar", length="10")

        assert dialect.requires_column_recreate(base, base.evolve(length="20"))
        assert dialect.requires_column_recreate(base, base.evolve(type="text", length=None))
        assert dialect.requires_column_recreate(
            base, base.evolve(generation_strategy=GenerationStrategy.INCREMENT)
        )
        assert not dialect.requires_column_recreate(
            base, base.evolve(generation_strategy=GenerationStrategy.UUID)
        )
        assert not dialect.requires_column_recreate(base, base.evolve(is_nullable=True))

    def test_sqlserver_enum_change_recreates(self) -> None:
        """The enum check lives in the column definition on SQL Server."""
        status = Column(name="status", type="nvarchar", enum=("a", "b"))

        assert SQLServerDialect().requires_column_recreate(status, status.evolve(enum=("a", "c")))
        assert not PostgresDialect().requires_column_recreate(
            status, status.evolve(enum=("a", "c"))
        )

    def test_has_column_changed(self) -> None:
        dialect = MySQLDialect()
        base = Column(name="a", type="int")

        assert not dialect.has_column_changed(base, base)
        assert dialect.has_column_changed(base, base.evolve(default="1"))
        assert dialect.has_column_changed(base, base.evolve(generated_type="STORED"))

    def test_postgres_alter_column(self) -> None:
        dialect = PostgresDialect()
        table = Table(name="users")
        old = Column(name="age", type="int", default="0")
        new = old.evolve(is_nullable=True, default=None, comment="years")

        steps = dialect.alter_column_sql(table, old, new)

        assert [query.query for query in steps.up] == [
            'ALTER TABLE "users" ALTER COLUMN "age" DROP NOT NULL',
            "COMMENT ON COLUMN \"users\".\"age\" IS 'years'",
            'ALTER TABLE "users" ALTER COLUMN "age" DROP DEFAULT',
        ]
        assert [query.query for query in reversed(steps.down)] == [
            'ALTER TABLE "users" ALTER COLUMN "age" SET DEFAULT 0',
            'COMMENT ON COLUMN "users"."age" IS NULL',
            'ALTER TABLE "users" ALTER COLUMN "age" SET NOT NULL',
        ]

    def test_sqlserver_alter_column_nullability(self) -> None:
        dialect = SQLServerDialect()
        table = Table(name="users")
        old = Column(name="name", type="nvarchar", length="50")

        steps = dialect.alter_column_sql(table, old, old.evolve(is_nullable=True))

        assert [query.query for query in steps.up] == [
            'ALTER TABLE "users" ALTER COLUMN "name" nvarchar(50) NULL'
        ]

    def test_identity_toggle_unsupported(self) -> None:
        with pytest.raises(UnsupportedOperation):
            PostgresDialect().set_identity_sql(Table(name="t"), Column(name="id", type="int"), True)


class TestTransactions:
    """Test transaction statements per dialect."""

    @pytest.mark.parametrize(
        "name, level, expected",
        [
            ("postgres", None, ["START TRANSACTION"]),
            (
                "postgres",
                IsolationLevel.SERIALIZABLE,
                ["START TRANSACTION", "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"],
            ),
            (
                "mysql",
                IsolationLevel.REPEATABLE_READ,
                ["SET TRANSACTION ISOLATION LEVEL REPEATABLE READ", "START TRANSACTION"],
            ),
            (
                "mssql",
                "READ COMMITTED",
                ["SET TRANSACTION ISOLATION LEVEL READ COMMITTED", "BEGIN TRANSACTION"],
            ),
            (
                "sqlite",
                IsolationLevel.READ_UNCOMMITTED,
                ["PRAGMA read_uncommitted = true", "BEGIN TRANSACTION"],
            ),
        ],
    )
    def test_begin_statements(self, name, level, expected) -> None:
        assert get_dialect(name).begin_statements(level) == expected

    def test_sqlite_rejects_other_levels(self) -> None:
        with pytest.raises(UnsupportedOperation):
            SQLiteDialect().begin_statements(IsolationLevel.REPEATABLE_READ)

    def test_commit_and_rollback(self) -> None:
        dialect = MySQLDialect()

        assert dialect.commit_statement() == "COMMIT"
        assert dialect.rollback_statement() == "ROLLBACK"


class TestResults:
    """Test mapping of driver results onto dialect result shapes."""

    def test_statement_kind(self) -> None:
        assert PostgresDialect.statement_kind("  update t set a = 1") == "UPDATE"
        assert PostgresDialect.statement_kind("") == ""

    def test_postgres_delete(self) -> None:
        result = PostgresDialect().normalize_result(
            "DELETE FROM t", DriverResult(rows=None, rowcount=2)
        )

        assert result.raw == [[], 2]
        assert result.records == []
        assert result.affected == 2

    def test_mysql_write(self) -> None:
        result = MySQLDialect().normalize_result(
            "INSERT INTO t VALUES (1)", DriverResult(rows=None, rowcount=1, lastrowid=9)
        )

        assert result.raw == {"affectedRows": 1, "insertId": 9}
        assert result.records is None

    def test_mysql_select(self) -> None:
        rows = [{"a": 1}]
        result = MySQLDialect().normalize_result("SELECT 1", DriverResult(rows=rows, rowcount=1))

        assert result.raw == rows

    def test_sqlserver_delete(self) -> None:
        result = SQLServerDialect().normalize_result(
            "DELETE FROM t", DriverResult(rows=None, rowcount=4)
        )

        assert result.raw == [[], 4]

    def test_sqlite_insert(self) -> None:
        result = SQLiteDialect().normalize_result(
            "INSERT INTO t VALUES (1)", DriverResult(rows=None, rowcount=1, lastrowid=5)
        )

        assert result.raw == 5
        assert result.affected == 1


class TestObjectSql:
    """Test table, index and database statements."""

    def test_rename_table(self) -> None:
        steps = MySQLDialect().rename_table_sql("shop.orders", "shop.sales")

        assert steps.up[0].query == "RENAME TABLE `shop`.`orders` TO `shop`.`sales`"
        assert steps.down[0].query == "RENAME TABLE `shop`.`sales` TO `shop`.`orders`"

    def test_sqlserver_rename_table(self) -> None:
        steps = SQLServerDialect().rename_table_sql("db.dbo.orders", "db.dbo.sales")

        assert steps.up[0].query == 'EXEC sp_rename "db.dbo.orders", "sales"'

    def test_index_statements(self) -> None:
        table = Table(name="app.users")
        index = Index(column_names=("email",), name="IDX_email", is_unique=True)

        postgres = PostgresDialect()
        assert (
            postgres.create_index_sql(table, index)
            == 'CREATE UNIQUE INDEX "IDX_email" ON "app"."users" ("email")'
        )
        assert postgres.drop_index_sql(table, index) == 'DROP INDEX "app"."IDX_email"'

        mysql = MySQLDialect()
        assert mysql.drop_index_sql(table, index) == "DROP INDEX `IDX_email` ON `app`.`users`"
        assert mysql.index_clause(index) == "UNIQUE INDEX `IDX_email` (`email`)"

        sqlite = SQLiteDialect()
        assert (
            sqlite.create_index_sql(table, index)
            == 'CREATE UNIQUE INDEX "IDX_email" ON "users" ("email")'
        )
        assert sqlite.drop_index_sql(table, index) == 'DROP INDEX "app"."IDX_email"'

    def test_views(self) -> None:
        dialect = PostgresDialect()
        view = View(name="recent", expression="SELECT 1", materialized=True)

        assert dialect.create_view_sql(view) == 'CREATE MATERIALIZED VIEW "recent" AS SELECT 1'
        assert dialect.drop_view_sql(view) == 'DROP MATERIALIZED VIEW "recent"'

    def test_clear_statements(self) -> None:
        assert PostgresDialect().drop_table_for_clear_sql("t") == 'DROP TABLE IF EXISTS "t" CASCADE'
        assert MySQLDialect().foreign_key_checks_sql(False) == "SET FOREIGN_KEY_CHECKS = 0"
        assert PostgresDialect().foreign_key_checks_sql(False) is None
        assert SQLiteDialect().clear_table_sql("t") == 'DELETE FROM "t"'
        assert MySQLDialect().clear_table_sql("t") == "TRUNCATE TABLE `t`"

    def test_databases_and_schemas(self) -> None:
        assert (
            SQLServerDialect().create_database_sql("app", True)
            == "IF DB_ID('app') IS NULL CREATE DATABASE \"app\""
        )
        assert MySQLDialect().drop_database_sql("app", True) == "DROP DATABASE IF EXISTS `app`"
        assert (
            PostgresDialect().drop_schema_sql("db.app", True, True)
            == 'DROP SCHEMA IF EXISTS "app" CASCADE'
        )
        with pytest.raises(UnsupportedOperation):
            SQLiteDialect().create_schema_sql("app", False)
        with pytest.raises(UnsupportedOperation):
            PostgresDialect().use_database_sql("app")

    def test_mysql_cannot_rename_constraints(self) -> None:
        with pytest.raises(UnsupportedOperation):
            MySQLDialect().rename_constraint_sql(Table(name="t"), "a", "b")

    def test_postgres_enum_type_names(self) -> None:
        dialect = PostgresDialect()
        table = Table(name="app.users")
        column = Column(name="Role", type="enum", enum=("a",))

        assert dialect.enum_type_name(table, column) == '"app"."users_role_enum"'
        assert dialect.enum_type_name(table, column, with_schema=False, escape=False) == "users_role_enum"
        assert dialect.enum_type_name(table, column, to_old=True, escape=False) == "app.users_role_enum_old"
        assert (
            dialect.create_enum_type_sql(table, column)
            == "CREATE TYPE \"app\".\"users_role_enum\" AS ENUM('a')"
        )
