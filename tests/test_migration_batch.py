"""Tests for MigrationExecutor batch operations and database objects."""

import pytest
import pytest_asyncio

from schemaforge.introspection import SQLiteIntrospector
from schemaforge.migration import MigrationExecutor
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
from schemaforge.types import GenerationStrategy

naming = DefaultNamingStrategy()


async def introspect(session, name):
    tables = await SQLiteIntrospector(session).load_tables([name])
    return tables[0] if tables else None


def people_table() -> Table:
    return Table(
        name="people",
        columns=[
            Column(
                name="id",
                type="integer",
                is_primary=True,
                generation_strategy=GenerationStrategy.INCREMENT,
            ),
            Column(name="name", type="varchar", length="100"),
            Column(name="email", type="varchar", length="255", is_nullable=True),
        ],
    )


@pytest_asyncio.fixture
async def sqlite_executor(sqlite_session):
    """Create a migration executor with people and tags tables."""
    executor = MigrationExecutor(sqlite_session)
    await executor.create_tables(
        [
            people_table(),
            Table(name="tags", columns=[Column(name="label", type="varchar", length="20")]),
        ]
    )
    return executor


class TestBatchColumns:
    """Test the list forms of column operations."""

    @pytest.mark.asyncio
    async def test_add_and_drop_columns(self, sqlite_session, sqlite_executor):
        original = sqlite_executor.cache.tables["people"]

        added = await sqlite_executor.add_columns(
            "people",
            [
                Column(name="age", type="integer", is_nullable=True),
                Column(name="nick", type="varchar", length="50", is_nullable=True),
            ],
        )

        assert [column.name for column in added.columns] == ["id", "name", "email", "age", "nick"]
        assert await introspect(sqlite_session, "people") == added

        restored = await sqlite_executor.drop_columns("people", ["age", added.get_column("nick")])

        assert restored == original
        assert await introspect(sqlite_session, "people") == original

    @pytest.mark.asyncio
    async def test_change_columns(self, sqlite_session, sqlite_executor):
        table = sqlite_executor.cache.tables["people"]
        name = table.get_column("name")
        email = table.get_column("email")

        changed = await sqlite_executor.change_columns(
            table,
            [
                ("name", name.evolve(is_nullable=True)),
                (email, email.evolve(length="320")),
            ],
        )

        assert changed.get_column("name").is_nullable
        assert changed.get_column("email").length == "320"
        assert await introspect(sqlite_session, "people") == changed


class TestBatchConstraints:
    """Test the list forms of constraint operations on a rebuilt table."""

    @pytest.mark.asyncio
    async def test_unique_constraints(self, sqlite_session, sqlite_executor):
        created = await sqlite_executor.create_unique_constraints(
            "people",
            [
                UniqueConstraint(column_names=("name",)),
                UniqueConstraint(column_names=("name", "email"), name="UQ_name_email"),
            ],
        )

        generated = naming.unique_constraint_name("people", ["name"])
        assert [unique.name for unique in created.uniques] == [generated, "UQ_name_email"]
        assert created.get_column("name").is_unique
        loaded = await introspect(sqlite_session, "people")
        assert {unique.name for unique in loaded.uniques} == {generated, "UQ_name_email"}

        dropped = await sqlite_executor.drop_unique_constraints(
            "people", [generated, created.uniques[1]]
        )

        assert dropped.uniques == ()
        assert not dropped.get_column("name").is_unique
        assert (await introspect(sqlite_session, "people")).uniques == ()

    @pytest.mark.asyncio
    async def test_check_constraints(self, sqlite_session, sqlite_executor):
        expression = 'length("name") > 0'

        created = await sqlite_executor.create_check_constraints(
            "people", [CheckConstraint(expression=expression)]
        )

        name = naming.check_constraint_name("people", expression)
        assert [check.name for check in created.checks] == [name]
        loaded = await introspect(sqlite_session, "people")
        assert [check.name for check in loaded.checks] == [name]

        dropped = await sqlite_executor.drop_check_constraints("people", [name])

        assert dropped.checks == ()
        assert (await introspect(sqlite_session, "people")).checks == ()

    @pytest.mark.asyncio
    async def test_create_primary_key_keeps_rows(self, sqlite_session, sqlite_executor):
        """A primary key added by rebuilding the table keeps existing rows."""
        await sqlite_session.query('INSERT INTO "tags" ("label") VALUES (?)', ["news"])

        updated = await sqlite_executor.create_primary_key("tags", ["label"])

        assert updated.primary_column_names == ["label"]
        loaded = await introspect(sqlite_session, "tags")
        assert loaded.primary_column_names == ["label"]
        assert await sqlite_session.query('SELECT "label" FROM "tags"') == [{"label": "news"}]

    @pytest.mark.asyncio
    async def test_foreign_keys(self, sqlite_session, sqlite_executor):
        await sqlite_executor.create_table(
            Table(
                name="memberships",
                columns=[Column(name="person_id", type="integer", is_nullable=True)],
            )
        )

        created = await sqlite_executor.create_foreign_keys(
            "memberships",
            [
                ForeignKey(
                    column_names=("person_id",),
                    referenced_table_name="people",
                    referenced_column_names=("id",),
                    on_delete="CASCADE",
                )
            ],
        )

        name = naming.foreign_key_name("memberships", ["person_id"])
        assert created.foreign_keys[0].name == name
        loaded = await introspect(sqlite_session, "memberships")
        assert [key.name for key in loaded.foreign_keys] == [name]
        assert loaded.foreign_keys[0].referenced_table_name == "people"
        assert loaded.foreign_keys[0].on_delete == "CASCADE"

        dropped = await sqlite_executor.drop_foreign_keys("memberships", [name])

        assert dropped.foreign_keys == ()
        assert (await introspect(sqlite_session, "memberships")).foreign_keys == ()

    @pytest.mark.asyncio
    async def test_indices(self, sqlite_session, sqlite_executor):
        created = await sqlite_executor.create_indices(
            "people",
            [
                Index(column_names=("name",)),
                Index(column_names=("email",), name="IDX_email", is_unique=True),
            ],
        )

        generated = naming.index_name("people", ["name"])
        assert [index.name for index in created.indices] == [generated, "IDX_email"]
        loaded = await introspect(sqlite_session, "people")
        assert set(loaded.indices) == set(created.indices)

        dropped = await sqlite_executor.drop_indices("people", [created.indices[0], "IDX_email"])

        assert dropped.indices == ()
        assert (await introspect(sqlite_session, "people")).indices == ()

    @pytest.mark.asyncio
    async def test_exclusion_constraints(self, recording_driver, make_session):
        executor = MigrationExecutor(make_session("postgres"))
        table = Table(name="bookings", columns=[Column(name="room", type="int")])
        expression = 'USING gist ("room" WITH =)'

        created = await executor.create_exclusion_constraints(
            table, [ExclusionConstraint(expression=expression)]
        )
        name = naming.exclusion_constraint_name("bookings", expression)
        dropped = await executor.drop_exclusion_constraints("bookings", [name])

        assert created.exclusions[0].name == name
        assert dropped.exclusions == ()
        assert recording_driver.executed == [
            f'ALTER TABLE "bookings" ADD CONSTRAINT "{name}" EXCLUDE {expression}',
            f'ALTER TABLE "bookings" DROP CONSTRAINT "{name}"',
        ]


class TestViews:
    """Test loading several recorded views."""

    @pytest.mark.asyncio
    async def test_get_views(self, sqlite_executor):
        first = View(name="people_names", expression='SELECT "name" FROM "people"')
        second = View(name="tag_labels", expression='SELECT "label" FROM "tags"')
        await sqlite_executor.create_view(first)
        await sqlite_executor.create_view(second)

        views = await sqlite_executor.get_views()

        assert sorted(views, key=lambda view: view.name) == [first, second]
        assert await sqlite_executor.get_views(["tag_labels"]) == [second]


class TestDatabaseObjects:
    """Test database and schema statements with their inverses."""

    @pytest.mark.asyncio
    async def test_memory_records_inverse(self, recording_driver, make_session):
        executor = MigrationExecutor(make_session("postgres"))
        executor.enable_sql_memory()

        await executor.create_schema("app")
        await executor.drop_database("archive")

        memory = executor.get_memory_sql()
        assert recording_driver.executed == []
        assert [query.query for query in memory.up] == [
            'CREATE SCHEMA "app"',
            'DROP DATABASE "archive"',
        ]
        assert [query.query for query in reversed(memory.down)] == [
            'CREATE DATABASE "archive"',
            'DROP SCHEMA "app"',
        ]

    @pytest.mark.asyncio
    async def test_clear_and_disable_memory(self, make_session):
        executor = MigrationExecutor(make_session("postgres"))
        executor.enable_sql_memory()
        await executor.create_database("reports")

        executor.clear_sql_memory()

        assert executor.memory_mode
        assert executor.get_memory_sql().up == []

        await executor.create_database("reports")
        executor.disable_sql_memory()

        assert not executor.memory_mode
        assert executor.get_memory_sql().up == []

    @pytest.mark.asyncio
    async def test_guarded_drop_checks_catalog(self, recording_driver, make_session):
        """Guarded statements only run when the catalog agrees."""
        executor = MigrationExecutor(make_session("postgres"))

        await executor.drop_schema("app", if_exist=True, is_cascade=True)

        assert not any(sql.startswith("DROP SCHEMA") for sql in recording_driver.executed)

        recording_driver.respond('"schemata"', [{"found": 1}])
        await executor.drop_schema("app", if_exist=True, is_cascade=True)

        assert recording_driver.executed[-1] == 'DROP SCHEMA IF EXISTS "app" CASCADE'

    @pytest.mark.asyncio
    async def test_create_database_if_not_exist(self, recording_driver, make_session):
        executor = MigrationExecutor(make_session("postgres"))
        recording_driver.respond('"pg_database"', [{"found": 1}])

        await executor.create_database("reports", if_not_exist=True)

        assert not any(sql.startswith("CREATE DATABASE") for sql in recording_driver.executed)
