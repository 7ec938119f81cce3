"""Tests for DDL synthesis."""

import pytest

from schemaforge.dialects import get_dialect
from schemaforge.errors import UnsupportedOperation
from schemaforge.naming import DefaultNamingStrategy
from schemaforge.schema import (
    CheckConstraint,
    Column,
    ExclusionConstraint,
    ForeignKey,
    Index,
    Table,
    UniqueConstraint,
    View,
)
from schemaforge.synthesizer import DdlSynthesizer
from schemaforge.types import GenerationStrategy

naming = DefaultNamingStrategy()


def synthesizer(name: str) -> DdlSynthesizer:
    return DdlSynthesizer(get_dialect(name))


def texts(queries) -> list[str]:
    return [query.query for query in queries]


@pytest.fixture
def users() -> Table:
    """Create a users table with a key, a unique, a check and a foreign key."""
    return Table(
        name="users",
        columns=[
            Column(
                name="id",
                type="int",
                is_primary=True,
                generation_strategy=GenerationStrategy.INCREMENT,
            ),
            Column(name="email", type="varchar", length="255"),
            Column(name="team_id", type="int", is_nullable=True),
        ],
        uniques=[UniqueConstraint(column_names=("email",), name="UQ_email")],
        checks=[CheckConstraint(expression='"id" > 0', name="CHK_id")],
        foreign_keys=[
            ForeignKey(
                column_names=("team_id",),
                referenced_table_name="teams",
                referenced_column_names=("id",),
                name="FK_team",
                on_delete="CASCADE",
            )
        ],
        indices=[Index(column_names=("team_id",), name="IDX_team")],
    )


class TestCreateTable:
    """Test CREATE TABLE synthesis."""

    def test_postgres(self, users) -> None:
        sql = synthesizer("postgres").create_table_sql(users).query
        primary_key = naming.primary_key_name(users, ["id"])

        assert sql == (
            'CREATE TABLE "users" ("id" SERIAL NOT NULL, "email" varchar(255) NOT NULL, '
            '"team_id" int, CONSTRAINT "UQ_email" UNIQUE ("email"), '
            'CONSTRAINT "CHK_id" CHECK ("id" > 0), '
            'CONSTRAINT "FK_team" FOREIGN KEY ("team_id") REFERENCES "teams" ("id") ON DELETE CASCADE, '
            f'CONSTRAINT "{primary_key}" PRIMARY KEY ("id"))'
        )

    def test_without_foreign_keys(self, users) -> None:
        sql = synthesizer("postgres").create_table_sql(
            users, if_not_exist=True, create_foreign_keys=False
        ).query

        assert sql.startswith('CREATE TABLE IF NOT EXISTS "users" (')
        assert "FOREIGN KEY" not in sql

    def test_mysql_inlines_indices(self, users) -> None:
        """MySQL declares indices inline and has no native unique or check."""
        sql = synthesizer("mysql").create_table_sql(users.evolve(checks=())).query

        assert sql == (
            "CREATE TABLE `users` (`id` int NOT NULL AUTO_INCREMENT, "
            "`email` varchar(255) NOT NULL, `team_id` int NULL, "
            "INDEX `IDX_team` (`team_id`), "
            "CONSTRAINT `FK_team` FOREIGN KEY (`team_id`) REFERENCES `teams` (`id`) ON DELETE CASCADE, "
            "PRIMARY KEY (`id`)) ENGINE=InnoDB"
        )

    def test_sqlite_inline_primary_key(self) -> None:
        table = Table(
            name="items",
            columns=[
                Column(
                    name="id",
                    type="integer",
                    is_primary=True,
                    generation_strategy=GenerationStrategy.INCREMENT,
                ),
                Column(name="label", type="varchar", length="20", is_nullable=True),
            ],
        )

        sql = synthesizer("sqlite").create_table_sql(table).query

        assert sql == (
            'CREATE TABLE "items" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"label" varchar(20))'
        )

    def test_sqlite_composite_primary_key(self) -> None:
        table = Table(
            name="pairs",
            columns=[
                Column(name="a", type="integer", is_primary=True),
                Column(name="b", type="integer", is_primary=True),
            ],
        )

        sql = synthesizer("sqlite").create_table_sql(table).query

        assert sql == (
            'CREATE TABLE "pairs" ("a" integer NOT NULL, "b" integer NOT NULL, '
            'PRIMARY KEY ("a", "b"))'
        )


class TestRecreateTable:
    """Test table rebuilds."""

    def test_rename_through_rebuild(self) -> None:
        """Rows are copied under the new column name and the inverse restores them."""
        key = Column(
            name="id",
            type="integer",
            is_primary=True,
            generation_strategy=GenerationStrategy.INCREMENT,
        )
        old = Table(
            name="items",
            columns=[key, Column(name="name", type="varchar", length="20")],
            indices=[Index(column_names=("name",), name="IDX_old")],
        )
        new = Table(
            name="items",
            columns=[key, Column(name="title", type="varchar", length="20")],
            indices=[Index(column_names=("title",), name="IDX_new")],
        )

        steps = synthesizer("sqlite").recreate_table_sql(old, new, {"title": "name"})

        assert texts(steps.up) == [
            "PRAGMA foreign_keys = OFF",
            "PRAGMA defer_foreign_keys = ON",
            'DROP INDEX "IDX_old"',
            'CREATE TABLE "temporary_items" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"title" varchar(20) NOT NULL)',
            'INSERT INTO "temporary_items"("id", "title") SELECT "id", "name" FROM "items"',
            'DROP TABLE "items"',
            'CREATE TABLE "items" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"title" varchar(20) NOT NULL)',
            'INSERT INTO "items"("id", "title") SELECT "id", "title" FROM "temporary_items"',
            'DROP TABLE "temporary_items"',
            'CREATE INDEX "IDX_new" ON "items" ("title")',
            "PRAGMA foreign_keys = ON",
        ]
        assert texts(reversed(steps.down)) == [
            "PRAGMA foreign_keys = OFF",
            "PRAGMA defer_foreign_keys = ON",
            'DROP INDEX "IDX_new"',
            'CREATE TABLE "temporary_items" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"name" varchar(20) NOT NULL)',
            'INSERT INTO "temporary_items"("id", "name") SELECT "id", "title" FROM "items"',
            'DROP TABLE "items"',
            'CREATE TABLE "items" ("id" integer PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"name" varchar(20) NOT NULL)',
            'INSERT INTO "items"("id", "name") SELECT "id", "name" FROM "temporary_items"',
            'DROP TABLE "temporary_items"',
            'CREATE INDEX "IDX_old" ON "items" ("name")',
            "PRAGMA foreign_keys = ON",
        ]

    def test_new_column_is_not_copied(self) -> None:
        old = Table(name="items", columns=[Column(name="a", type="integer")])
        new = old.add_column(Column(name="b", type="integer", is_nullable=True))

        steps = synthesizer("sqlite").recreate_table_sql(old, new)

        assert 'INSERT INTO "temporary_items"("a") SELECT "a" FROM "items"' in texts(steps.up)


class TestViews:
    """Test view statements and their metadata rows."""

    def test_postgres_metadata(self) -> None:
        synth = synthesizer("postgres")
        view = View(name="app.recent", expression="SELECT 1")

        assert synth.create_view_sql(view).query == 'CREATE VIEW "app"."recent" AS SELECT 1'
        assert synth.insert_view_metadata_sql("schemaforge_metadata", view).query == (
            'INSERT INTO "schemaforge_metadata"("type", "database", "schema", "name", "value") '
            "VALUES ('VIEW', NULL, 'app', 'recent', 'SELECT 1')"
        )
        assert synth.delete_view_metadata_sql("schemaforge_metadata", view).query == (
            'DELETE FROM "schemaforge_metadata" WHERE "type" = \'VIEW\' AND "database" IS NULL '
            "AND \"schema\" = 'app' AND \"name\" = 'recent'"
        )

    def test_mysql_metadata_uses_database(self) -> None:
        view = View(name="shop.recent", expression="SELECT 1", materialized=False)

        sql = synthesizer("mysql").insert_view_metadata_sql("meta", view).query

        assert sql.endswith("VALUES ('VIEW', 'shop', NULL, 'recent', 'SELECT 1')")

    def test_metadata_table_model(self) -> None:
        table = synthesizer("sqlite").metadata_table("meta")

        assert [column.name for column in table.columns] == [
            "type",
            "database",
            "schema",
            "name",
            "value",
        ]
        assert table.primary_column_names == []


class TestConstraintSupport:
    """Test that unsupported constraint kinds raise."""

    def test_mysql_rejects_unique_and_check(self, users) -> None:
        synth = synthesizer("mysql")

        with pytest.raises(UnsupportedOperation, match="unique"):
            synth.create_unique_sql(users, users.uniques[0])
        with pytest.raises(UnsupportedOperation, match="check"):
            synth.drop_check_sql(users, users.checks[0])

    def test_exclusion_only_on_postgres(self, users) -> None:
        exclusion = ExclusionConstraint(expression="USING gist (email WITH =)", name="XCL_email")

        assert synthesizer("postgres").create_exclusion_sql(users, exclusion).query == (
            'ALTER TABLE "users" ADD CONSTRAINT "XCL_email" EXCLUDE USING gist (email WITH =)'
        )
        with pytest.raises(UnsupportedOperation):
            synthesizer("mssql").create_exclusion_sql(users, exclusion)

    def test_primary_key_statements(self, users) -> None:
        synth = synthesizer("mssql")
        name = naming.primary_key_name(users, ["id"])

        assert synth.create_primary_key_sql(users, ["id"]).query == (
            f'ALTER TABLE "users" ADD CONSTRAINT "{name}" PRIMARY KEY ("id")'
        )
        assert synth.drop_primary_key_sql(users, ["id"]).query == (
            f'ALTER TABLE "users" DROP CONSTRAINT "{name}"'
        )
        with pytest.raises(UnsupportedOperation):
            synthesizer("sqlite").create_primary_key_sql(users, ["id"])
