"""Tests for building table models from canned catalog rows."""

from schemaforge.introspection import (
    build_mysql_tables,
    build_postgres_tables,
    build_sqlite_tables,
    build_sqlserver_tables,
)
from schemaforge.introspection.base import (
    group_rows,
    normalize_action,
    parse_enum_values,
    parse_type,
    qualified_name,
)
from schemaforge.schema import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from schemaforge.types import GenerationStrategy


def test_parse_type() -> None:
    """Test splitting type definitions."""
    assert parse_type("varchar(255)") == ("varchar", "255", None, None)
    assert parse_type("DECIMAL(10, 2)") == ("decimal", None, 10, 2)
    assert parse_type("numeric(8)") == ("numeric", None, 8, None)
    assert parse_type("integer") == ("integer", None, None, None)
    assert parse_type("nvarchar(MAX)") == ("nvarchar", "MAX", None, None)


def test_parse_enum_values() -> None:
    """Test extracting enum labels including escaped quotes."""
    assert parse_enum_values("enum('a','b')") == ("a", "b")
    assert parse_enum_values("[status] IN (N'open', N'it''s')") == ("open", "it's")


def test_row_helpers() -> None:
    """Test grouping and name helpers."""
    rows = [{"t": "b", "v": 1}, {"t": "a", "v": 2}, {"t": "b", "v": 3}]
    groups = group_rows(rows, lambda row: row["t"])

    assert list(groups) == ["b", "a"]
    assert [row["v"] for row in groups["b"]] == [1, 3]
    assert normalize_action("no action") is None
    assert normalize_action("cascade") == "CASCADE"
    assert normalize_action(None) is None
    assert qualified_name(None, "public", "users") == "public.users"


def mysql_column(name: str, position: int, **overrides):
    row = {
        "TABLE_SCHEMA": "shop",
        "TABLE_NAME": "orders",
        "COLUMN_NAME": name,
        "ORDINAL_POSITION": position,
        "DATA_TYPE": "int",
        "COLUMN_TYPE": "int",
        "CHARACTER_MAXIMUM_LENGTH": None,
        "NUMERIC_PRECISION": 10,
        "NUMERIC_SCALE": 0,
        "IS_NULLABLE": "NO",
        "COLUMN_DEFAULT": None,
        "COLUMN_KEY": "",
        "EXTRA": "",
        "CHARACTER_SET_NAME": None,
        "COLLATION_NAME": None,
        "GENERATION_EXPRESSION": "",
        "COLUMN_COMMENT": "",
    }
    row.update(overrides)
    return row


class TestMySQLBuilder:
    """Test models built from information_schema rows."""

    def build(self, **rows):
        return build_mysql_tables(
            names={("shop", "orders"): "orders"},
            column_rows=rows.get("columns", []),
            index_rows=rows.get("indices", []),
            foreign_key_rows=rows.get("foreign_keys", []),
            database_rows=[
                {
                    "SCHEMA_NAME": "shop",
                    "DEFAULT_CHARACTER_SET_NAME": "utf8mb4",
                    "DEFAULT_COLLATION_NAME": "utf8mb4_general_ci",
                }
            ],
            table_rows=[{"TABLE_SCHEMA": "shop", "TABLE_NAME": "orders", "ENGINE": "InnoDB"}],
            current_database="shop",
        )

    def test_columns(self) -> None:
        """Test identity, enum, string default and charset handling."""
        tables = self.build(
            columns=[
                mysql_column("id", 1, COLUMN_KEY="PRI", EXTRA="auto_increment"),
                mysql_column(
                    "status",
                    2,
                    DATA_TYPE="enum",
                    COLUMN_TYPE="enum('new','paid')",
                    COLUMN_DEFAULT="new",
                    CHARACTER_SET_NAME="utf8mb4",
                    COLLATION_NAME="utf8mb4_bin",
                ),
                mysql_column(
                    "note",
                    3,
                    DATA_TYPE="varchar",
                    CHARACTER_MAXIMUM_LENGTH=100,
                    IS_NULLABLE="YES",
                    COLUMN_DEFAULT="NULL",
                ),
            ]
        )

        assert len(tables) == 1
        table = tables[0]
        assert table.name == "orders"
        assert table.engine is None
        assert table.columns == (
            Column(
                name="id",
                type="int",
                generation_strategy=GenerationStrategy.INCREMENT,
                is_primary=True,
            ),
            Column(
                name="status",
                type="enum",
                default="'new'",
                enum=("new", "paid"),
                collation="utf8mb4_bin",
            ),
            Column(name="note", type="varchar", length="100", is_nullable=True),
        )

    def test_indices_and_foreign_keys(self) -> None:
        """Unique indices double as unique constraints; key indices are skipped."""
        index_base = {"TABLE_SCHEMA": "shop", "TABLE_NAME": "orders", "INDEX_TYPE": "BTREE"}
        tables = self.build(
            columns=[
                mysql_column("id", 1, COLUMN_KEY="PRI"),
                mysql_column("code", 2, DATA_TYPE="varchar", CHARACTER_MAXIMUM_LENGTH=20),
                mysql_column("user_id", 3),
            ],
            indices=[
                {**index_base, "INDEX_NAME": "PRIMARY", "COLUMN_NAME": "id", "SEQ_IN_INDEX": 1, "NON_UNIQUE": 0},
                {**index_base, "INDEX_NAME": "UQ_code", "COLUMN_NAME": "code", "SEQ_IN_INDEX": 1, "NON_UNIQUE": 0},
                {**index_base, "INDEX_NAME": "FK_user", "COLUMN_NAME": "user_id", "SEQ_IN_INDEX": 1, "NON_UNIQUE": 1},
            ],
            foreign_keys=[
                {
                    "TABLE_SCHEMA": "shop",
                    "TABLE_NAME": "orders",
                    "CONSTRAINT_NAME": "FK_user",
                    "COLUMN_NAME": "user_id",
                    "ORDINAL_POSITION": 1,
                    "REFERENCED_TABLE_SCHEMA": "accounts",
                    "REFERENCED_TABLE_NAME": "users",
                    "REFERENCED_COLUMN_NAME": "id",
                    "DELETE_RULE": "CASCADE",
                    "UPDATE_RULE": "NO ACTION",
                }
            ],
        )

        table = tables[0]
        assert table.indices == (Index(column_names=("code",), name="UQ_code", is_unique=True),)
        assert table.uniques == (UniqueConstraint(column_names=("code",), name="UQ_code"),)
        assert table.get_column("code").is_unique
        assert table.foreign_keys == (
            ForeignKey(
                column_names=("user_id",),
                referenced_table_name="accounts.users",
                referenced_column_names=("id",),
                name="FK_user",
                on_delete="CASCADE",
            ),
        )

    def test_missing_table_is_skipped(self) -> None:
        assert self.build() == []


class TestPostgresBuilder:
    """Test models built from pg_catalog rows."""

    def column(self, name: str, position: int, **overrides):
        row = {
            "table_schema": "public",
            "table_name": "tickets",
            "column_name": name,
            "ordinal_position": position,
            "data_type": "integer",
            "udt_schema": "pg_catalog",
            "udt_name": "int4",
            "character_maximum_length": None,
            "numeric_precision": 32,
            "numeric_scale": 0,
            "is_nullable": "NO",
            "column_default": None,
        }
        row.update(overrides)
        return row

    def test_full_table(self) -> None:
        """Test serial, enum, cast default, constraints and indices together."""
        constraint_base = {"table_schema": "public", "table_name": "tickets", "definition": None}
        tables = build_postgres_tables(
            names={("public", "tickets"): "tickets"},
            column_rows=[
                self.column("id", 1, column_default="nextval('tickets_id_seq'::regclass)"),
                self.column(
                    "state",
                    2,
                    data_type="USER-DEFINED",
                    udt_schema="public",
                    udt_name="tickets_state_enum",
                    column_default="'open'::tickets_state_enum",
                ),
                self.column(
                    "title",
                    3,
                    data_type="character varying",
                    udt_name="varchar",
                    character_maximum_length=80,
                    is_nullable="YES",
                ),
            ],
            constraint_rows=[
                {**constraint_base, "constraint_name": "PK_t", "constraint_type": "p", "column_name": "id"},
                {**constraint_base, "constraint_name": "UQ_t", "constraint_type": "u", "column_name": "title"},
                {
                    **constraint_base,
                    "constraint_name": "CHK_t",
                    "constraint_type": "c",
                    "column_name": "id",
                    "definition": "CHECK ((id > 0))",
                },
            ],
            index_rows=[
                {
                    "table_schema": "public",
                    "table_name": "tickets",
                    "index_name": "IDX_t",
                    "column_name": "state",
                    "position": 1,
                    "is_unique": False,
                    "access_method": "btree",
                    "condition": "title IS NOT NULL",
                }
            ],
            foreign_key_rows=[],
            enum_rows=[
                {"type_schema": "public", "type_name": "tickets_state_enum", "value": "closed", "sort_order": 2},
                {"type_schema": "public", "type_name": "tickets_state_enum", "value": "open", "sort_order": 1},
            ],
            current_schema="public",
        )

        table = tables[0]
        id_column, state, title = table.columns
        assert id_column.is_increment
        assert id_column.default is None
        assert id_column.is_primary
        assert state.type == "enum"
        assert state.enum == ("open", "closed")
        assert state.enum_name is None
        assert state.default == "'open'"
        assert title == Column(
            name="title",
            type="character varying",
            length="80",
            is_nullable=True,
            is_unique=True,
        )
        assert table.checks == (
            CheckConstraint(expression="(id > 0)", name="CHK_t", column_names=("id",)),
        )
        assert table.indices == (
            Index(column_names=("state",), name="IDX_t", where="title IS NOT NULL"),
        )

    def test_custom_enum_name_and_array(self) -> None:
        """Enum types not following the generated name keep their name."""
        tables = build_postgres_tables(
            names={("public", "tickets"): "tickets"},
            column_rows=[
                self.column(
                    "tags",
                    1,
                    data_type="ARRAY",
                    udt_schema="public",
                    udt_name="_label",
                )
            ],
            constraint_rows=[],
            index_rows=[],
            foreign_key_rows=[],
            enum_rows=[{"type_schema": "public", "type_name": "label", "value": "x", "sort_order": 1}],
            current_schema="public",
        )

        column = tables[0].columns[0]
        assert column.is_array
        assert column.type == "enum"
        assert column.enum_name == "label"


class TestSQLServerBuilder:
    """Test models built from INFORMATION_SCHEMA and sys rows."""

    def test_enum_check_folds_into_column(self) -> None:
        base = {"TABLE_CATALOG": "main", "TABLE_SCHEMA": "dbo", "TABLE_NAME": "jobs"}

        def column(name, position, **overrides):
            row = {
                **base,
                "COLUMN_NAME": name,
                "ORDINAL_POSITION": position,
                "DATA_TYPE": "int",
                "CHARACTER_MAXIMUM_LENGTH": None,
                "NUMERIC_PRECISION": 10,
                "NUMERIC_SCALE": 0,
                "IS_NULLABLE": "NO",
                "COLUMN_DEFAULT": None,
            }
            row.update(overrides)
            return row

        tables = build_sqlserver_tables(
            names={("main", "dbo", "jobs"): "jobs"},
            column_rows=[
                column("id", 1, IS_IDENTITY=1),
                column(
                    "state",
                    2,
                    DATA_TYPE="nvarchar",
                    CHARACTER_MAXIMUM_LENGTH=255,
                    COLUMN_DEFAULT="(N'open')",
                ),
                column("body", 3, DATA_TYPE="nvarchar", CHARACTER_MAXIMUM_LENGTH=-1, IS_NULLABLE="YES"),
            ],
            constraint_rows=[
                {**base, "CONSTRAINT_NAME": "PK_j", "CONSTRAINT_TYPE": "PRIMARY KEY", "COLUMN_NAME": "id", "CHECK_CLAUSE": None},
                {
                    **base,
                    "CONSTRAINT_NAME": "CHK_j_ENUM",
                    "CONSTRAINT_TYPE": "CHECK",
                    "COLUMN_NAME": "state",
                    "CHECK_CLAUSE": "([state]='closed' OR [state]='open')",
                },
            ],
            index_rows=[],
            foreign_key_rows=[
                {
                    **base,
                    "FK_NAME": "FK_j",
                    "COLUMN_NAME": "id",
                    "CONSTRAINT_COLUMN_ID": 1,
                    "REF_SCHEMA": "audit",
                    "REF_TABLE": "runs",
                    "REF_COLUMN": "job_id",
                    "ON_DELETE": "SET_NULL",
                    "ON_UPDATE": "NO_ACTION",
                }
            ],
            current_database="main",
            current_schema="dbo",
        )

        table = tables[0]
        id_column, state, body = table.columns
        assert id_column.is_increment and id_column.is_primary
        assert state.type == "enum"
        assert state.enum == ("closed", "open")
        assert state.default == "N'open'"
        assert body.length == "MAX"
        assert table.checks == ()
        assert table.foreign_keys[0].referenced_table_name == "audit.runs"
        assert table.foreign_keys[0].on_delete == "SET NULL"
        assert table.foreign_keys[0].on_update is None


class TestSQLiteBuilder:
    """Test models built from sqlite_master and pragma rows."""

    def test_table_sql_supplies_names(self) -> None:
        sql = (
            'CREATE TABLE "posts" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"slug" varchar(64) NOT NULL, "author_id" integer, '
            'CONSTRAINT "UQ_slug" UNIQUE ("slug"), '
            'CONSTRAINT "CHK_len" CHECK (length("slug") > 2), '
            'CONSTRAINT "FK_author" FOREIGN KEY ("author_id") REFERENCES "users" ("id") '
            "ON DELETE CASCADE)"
        )
        master_rows = [
            {"type": "table", "name": "posts", "tbl_name": "posts", "sql": sql},
            {
                "type": "index",
                "name": "IDX_author",
                "tbl_name": "posts",
                "sql": 'CREATE INDEX "IDX_author" ON "posts" ("author_id") WHERE "author_id" IS NOT NULL',
            },
        ]

        def column(cid, name, type_, notnull, pk=0):
            return {
                "table_name": "posts",
                "cid": cid,
                "name": name,
                "type": type_,
                "notnull": notnull,
                "dflt_value": None,
                "pk": pk,
            }

        def index(name, column_name, origin, unique):
            return {
                "table_name": "posts",
                "index_name": name,
                "is_unique": unique,
                "origin": origin,
                "seqno": 0,
                "column_name": column_name,
            }

        tables = build_sqlite_tables(
            master_rows,
            [
                column(0, "id", "integer", 1, pk=1),
                column(1, "slug", "varchar(64)", 1),
                column(2, "author_id", "integer", 0),
            ],
            [
                index("sqlite_autoindex_posts_1", "slug", "u", 1),
                index("IDX_author", "author_id", "c", 0),
            ],
            [
                {
                    "table_name": "posts",
                    "id": 0,
                    "seq": 0,
                    "table": "users",
                    "from": "author_id",
                    "to": "id",
                    "on_update": "NO ACTION",
                    "on_delete": "CASCADE",
                    "match": "NONE",
                }
            ],
        )

        table = tables[0]
        assert table.get_column("id").is_increment
        assert table.get_column("slug") == Column(
            name="slug", type="varchar", length="64", is_unique=True
        )
        assert table.uniques == (UniqueConstraint(column_names=("slug",), name="UQ_slug"),)
        assert table.indices == (
            Index(column_names=("author_id",), name="IDX_author", where='"author_id" IS NOT NULL'),
        )
        assert table.checks == (
            CheckConstraint(
                expression='length("slug") > 2', name="CHK_len", column_names=("slug",)
            ),
        )
        assert table.foreign_keys == (
            ForeignKey(
                column_names=("author_id",),
                referenced_table_name="users",
                referenced_column_names=("id",),
                name="FK_author",
                on_delete="CASCADE",
            ),
        )
