"""Reversible schema changes applied through a session.

Every public operation builds a ``Steps`` value (forward statements plus the
statements undoing them) from the cached ``Table``, runs the forward half and
swaps the edited model into the cache. Nothing is rolled back on failure:
several dialects commit DDL implicitly, so the cache is only touched once all
statements succeeded.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from schemaforge.cache import SchemaCache
from schemaforge.errors import NotFound
from schemaforge.introspection import get_introspector
from schemaforge.log import get_logger
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
from schemaforge.session import ConnectionSession
from schemaforge.statements import Query, Steps
from schemaforge.synthesizer import DdlSynthesizer
from schemaforge.types import GenerationStrategy

logger = get_logger(__name__)

# (kind, before, after) for one object renamed as a side effect of a change
Rename = tuple[str, Any, Any]


@dataclass
class SqlInMemory:
    """Statements recorded while SQL memory mode is on.

    Attributes:
        up: Forward statements in execution order
        down: Inverse statements, replayed back to front
    """

    up: list[Query] = field(default_factory=list)
    down: list[Query] = field(default_factory=list)


class MigrationExecutor:
    """Applies schema changes and keeps the table cache in step with them.

    Example:
        >>> executor = MigrationExecutor(session)
        >>> await executor.create_table(Table("user", columns=[...]))
        >>> await executor.add_column("user", Column("email", "varchar", length="255"))
    """

    def __init__(
        self,
        session: ConnectionSession,
        cache: SchemaCache | None = None,
        metadata_table: str | None = None,
    ) -> None:
        """Initialize migration executor.

        Args:
            session: Session the statements run on
            cache: Table cache, a fresh one bound to ``session`` by default
            metadata_table: Table that records view definitions
        """
        self.session = session
        self.dialect = session.dialect
        self.synthesizer = DdlSynthesizer(self.dialect)
        self.cache = cache or SchemaCache(get_introspector(session, metadata_table))
        self.introspector = self.cache.introspector
        self.metadata_table = metadata_table or self.introspector.metadata_table
        self.memory_mode = False
        self._memory = SqlInMemory()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _apply(self, steps: Steps) -> None:
        if self.memory_mode:
            self._memory.up.extend(steps.up)
            self._memory.down.extend(steps.down)
            return
        for query in steps.up:
            await self.session.query(query.query, query.parameters)

    async def _commit(self, old: Table, steps: Steps, new: Table) -> Table:
        await self._apply(steps)
        self.cache.replace_cached_table(old, new)
        return new

    def _log(self, message: str) -> None:
        self.session.query_logger.log_migration(message)

    async def resolve(self, target: Table | str) -> Table:
        """Turn a table or a qualified name into the cached table model.

        A ``Table`` that is not cached yet becomes the cache entry for its
        name.
        """
        if isinstance(target, Table):
            if target.name in self.cache:
                return self.cache.tables[target.name]
            self.cache.add_table(target)
            return target
        return await self.cache.get_cached_table(target)

    # ------------------------------------------------------------------
    # SQL memory mode
    # ------------------------------------------------------------------

    def enable_sql_memory(self) -> None:
        """Record statements instead of running them; the cache still updates."""
        self.memory_mode = True
        self._memory = SqlInMemory()

    def disable_sql_memory(self) -> None:
        self.memory_mode = False
        self._memory = SqlInMemory()

    def clear_sql_memory(self) -> None:
        self._memory = SqlInMemory()

    def get_memory_sql(self) -> SqlInMemory:
        return SqlInMemory(up=list(self._memory.up), down=list(self._memory.down))

    async def execute_memory_up_sql(self) -> None:
        for query in self._memory.up:
            await self.session.query(query.query, query.parameters)

    async def execute_memory_down_sql(self) -> None:
        """Run the recorded inverse statements, last recorded first."""
        for query in reversed(self._memory.down):
            await self.session.query(query.query, query.parameters)

    # ------------------------------------------------------------------
    # Model helpers
    # ------------------------------------------------------------------

    def _normalize(self, table: Table) -> Table:
        """Fill in generated object names and mirror unique columns.

        Columns flagged unique become single-column unique constraints. On
        dialects without native unique constraints every unique is also kept
        as a unique index with the same name, since that is what the database
        reports back.
        """
        naming = self.dialect.naming
        uniques = list(table.uniques)
        for column in table.columns:
            if column.is_unique and not any(
                unique.column_names == (column.name,) for unique in uniques
            ):
                uniques.append(UniqueConstraint(column_names=(column.name,)))
        uniques = [
            unique
            if unique.name
            else replace(unique, name=naming.unique_constraint_name(table, unique.column_names))
            for unique in uniques
        ]
        indices = [
            index
            if index.name
            else replace(index, name=naming.index_name(table, index.column_names, index.where))
            for index in table.indices
        ]
        if not self.dialect.supports_unique_constraint:
            for unique in uniques:
                if not any(index.name == unique.name for index in indices):
                    indices.append(
                        Index(column_names=unique.column_names, name=unique.name, is_unique=True)
                    )
        column_names = [column.name for column in table.columns]
        checks = [
            check.with_referenced_columns(column_names)
            if check.name
            else replace(
                check.with_referenced_columns(column_names),
                name=naming.check_constraint_name(table, check.expression),
            )
            for check in table.checks
        ]
        exclusions = [
            exclusion
            if exclusion.name
            else replace(
                exclusion, name=naming.exclusion_constraint_name(table, exclusion.expression)
            )
            for exclusion in table.exclusions
        ]
        foreign_keys = [
            foreign_key
            if foreign_key.name
            else replace(
                foreign_key,
                name=naming.foreign_key_name(
                    table,
                    foreign_key.column_names,
                    foreign_key.referenced_table_name,
                    foreign_key.referenced_column_names,
                ),
            )
            for foreign_key in table.foreign_keys
        ]
        single = {unique.column_names[0] for unique in uniques if len(unique.column_names) == 1}
        columns = [
            column
            if column.is_unique == (column.name in single)
            else column.evolve(is_unique=column.name in single)
            for column in table.columns
        ]
        return table.evolve(
            columns=columns,
            indices=indices,
            uniques=uniques,
            checks=checks,
            exclusions=exclusions,
            foreign_keys=foreign_keys,
        )

    def _effective(self, column: Column) -> Column:
        # A UUID column without an explicit default uses the dialect generator
        if (
            column.generation_strategy == GenerationStrategy.UUID
            and column.default is None
            and self.dialect.uuid_generator
        ):
            return column.evolve(default=self.dialect.uuid_generator)
        return column

    def _with_unique(self, table: Table, column_name: str, is_unique: bool) -> Table:
        """Add or remove the single-column unique of ``column_name``."""
        native = self.dialect.supports_unique_constraint
        if is_unique:
            if table.find_single_column_unique(column_name) is None:
                name = self.dialect.naming.unique_constraint_name(table, [column_name])
                table = table.add_unique(UniqueConstraint(column_names=(column_name,), name=name))
                if not native:
                    table = table.add_index(
                        Index(column_names=(column_name,), name=name, is_unique=True)
                    )
        else:
            unique = table.find_single_column_unique(column_name)
            if unique is not None:
                table = table.remove_unique(unique)
                index = table.find_index(unique.name or "")
                if not native and index is not None:
                    table = table.remove_index(index)
        return table.update_column(column_name, is_unique=is_unique)

    def _without_column_dependents(self, table: Table, column_name: str) -> Table:
        for index in table.find_column_indices(column_name):
            table = table.remove_index(index)
        for unique in table.find_column_uniques(column_name):
            table = table.remove_unique(unique)
        for check in table.find_column_checks(column_name):
            table = table.remove_check(check)
        for foreign_key in table.find_column_foreign_keys(column_name):
            table = table.remove_foreign_key(foreign_key)
        return table

    def _diff_steps(self, old: Table, new: Table) -> Steps:
        """Drop objects only ``old`` has, then create objects only ``new`` has.

        Columns are not compared; both tables must have the same name.
        """
        synthesizer = self.synthesizer
        dialect = self.dialect
        steps = Steps()

        for foreign_key in old.foreign_keys:
            if foreign_key not in new.foreign_keys:
                steps.add(
                    synthesizer.drop_foreign_key_sql(old, foreign_key),
                    synthesizer.create_foreign_key_sql(old, foreign_key),
                )
        for index in old.indices:
            if index not in new.indices:
                steps.add(
                    synthesizer.drop_index_sql(old, index),
                    synthesizer.create_index_sql(old, index),
                )
        if dialect.supports_unique_constraint:
            for unique in old.uniques:
                if unique not in new.uniques:
                    steps.add(
                        synthesizer.drop_unique_sql(old, unique),
                        synthesizer.create_unique_sql(old, unique),
                    )
        if dialect.supports_check_constraint:
            for check in old.checks:
                if check not in new.checks:
                    steps.add(
                        synthesizer.drop_check_sql(old, check),
                        synthesizer.create_check_sql(old, check),
                    )
        if dialect.supports_exclusion_constraint:
            for exclusion in old.exclusions:
                if exclusion not in new.exclusions:
                    steps.add(
                        synthesizer.drop_exclusion_sql(old, exclusion),
                        synthesizer.create_exclusion_sql(old, exclusion),
                    )

        if dialect.supports_exclusion_constraint:
            for exclusion in new.exclusions:
                if exclusion not in old.exclusions:
                    steps.add(
                        synthesizer.create_exclusion_sql(new, exclusion),
                        synthesizer.drop_exclusion_sql(new, exclusion),
                    )
        if dialect.supports_check_constraint:
            for check in new.checks:
                if check not in old.checks:
                    steps.add(
                        synthesizer.create_check_sql(new, check),
                        synthesizer.drop_check_sql(new, check),
                    )
        if dialect.supports_unique_constraint:
            for unique in new.uniques:
                if unique not in old.uniques:
                    steps.add(
                        synthesizer.create_unique_sql(new, unique),
                        synthesizer.drop_unique_sql(new, unique),
                    )
        for index in new.indices:
            if index not in old.indices:
                steps.add(
                    synthesizer.create_index_sql(new, index),
                    synthesizer.drop_index_sql(new, index),
                )
        for foreign_key in new.foreign_keys:
            if foreign_key not in old.foreign_keys:
                steps.add(
                    synthesizer.create_foreign_key_sql(new, foreign_key),
                    synthesizer.drop_foreign_key_sql(new, foreign_key),
                )
        return steps

    def _recreate(
        self, old: Table, new: Table, renamed_columns: dict[str, str] | None = None
    ) -> Steps:
        return self.synthesizer.recreate_table_sql(old, new, renamed_columns)

    # ------------------------------------------------------------------
    # Plans: each returns the steps and the table they produce
    # ------------------------------------------------------------------

    def _primary_key_plan(
        self, table: Table, column_names: Sequence[str]
    ) -> tuple[Steps, Table]:
        """Move the primary key to ``column_names``.

        Where an identity column must be covered by a key, identity is
        stripped before the old key is dropped and restored once the new key
        exists. A column leaving the key stays without identity.
        """
        dialect = self.dialect
        synthesizer = self.synthesizer
        old_names = table.primary_column_names
        new_names = list(column_names)
        steps = Steps()
        if old_names == new_names:
            return steps, table

        stripped = []
        if dialect.identity_requires_primary_key:
            stripped = [column for column in table.primary_columns if column.is_increment]
        for column in stripped:
            steps.add(
                dialect.set_identity_sql(table, column, False),
                dialect.set_identity_sql(table, column, True),
            )
        if old_names:
            steps.add(
                synthesizer.drop_primary_key_sql(table, old_names),
                synthesizer.create_primary_key_sql(table, old_names),
            )

        new_table = table.with_primary_columns(new_names)
        if new_names:
            steps.add(
                synthesizer.create_primary_key_sql(new_table, new_names),
                synthesizer.drop_primary_key_sql(new_table, new_names),
            )
        for column in stripped:
            if column.name in new_names:
                steps.add(
                    dialect.set_identity_sql(new_table, column, True),
                    dialect.set_identity_sql(new_table, column, False),
                )
            else:
                new_table = new_table.update_column(
                    column.name, generation_strategy=GenerationStrategy.NONE
                )
        return steps, new_table

    def _add_column_plan(self, table: Table, column: Column) -> tuple[Steps, Table]:
        dialect = self.dialect
        steps = Steps()
        inline_primary = (
            column.is_primary
            and dialect.inline_primary_key_on_add
            and not table.primary_column_names
        )
        # The key has to exist before identity can be switched on
        deferred_identity = (
            column.is_primary
            and column.is_increment
            and dialect.identity_requires_primary_key
            and not inline_primary
        )
        added = column.evolve(is_primary=inline_primary, is_unique=False)
        if deferred_identity:
            added = added.without_identity()
        steps.extend(dialect.add_column_steps(table, added, skip_primary=not inline_primary))
        current = table.add_column(added)

        if column.is_primary and not inline_primary:
            primary_steps, current = self._primary_key_plan(
                current, current.primary_column_names + [column.name]
            )
            steps.extend(primary_steps)
        if deferred_identity:
            added = current.get_column(column.name)
            steps.add(
                dialect.set_identity_sql(current, added, True),
                dialect.set_identity_sql(current, added, False),
            )
            current = current.update_column(
                column.name, generation_strategy=GenerationStrategy.INCREMENT
            )
        if column.is_unique:
            unique_table = self._with_unique(current, column.name, True)
            steps.extend(self._diff_steps(current, unique_table))
            current = unique_table
        if column.comment:
            commented = current.evolve(columns=(current.get_column(column.name),))
            for statement in dialect.table_comment_statements(commented):
                steps.add(statement)
        return steps, current

    def _drop_column_plan(self, table: Table, column_name: str) -> tuple[Steps, Table]:
        column = table.get_column(column_name)
        steps = Steps()
        current = table
        if column.is_primary:
            primary_steps, current = self._primary_key_plan(
                current, [name for name in current.primary_column_names if name != column_name]
            )
            steps.extend(primary_steps)
        remaining = self._without_column_dependents(current, column_name)
        steps.extend(self._diff_steps(current, remaining))
        current = remaining
        steps.extend(self.dialect.drop_column_steps(current, current.get_column(column_name)))
        return steps, current.remove_column(column_name)

    def _is_generated_name(self, name: str | None, *candidates: str) -> bool:
        return name is not None and name in candidates

    def _rename_column_model(
        self, table: Table, old: Column, new: Column
    ) -> tuple[Table, list[Rename]]:
        """Rename a column in the model and in every object using it.

        Objects keep user supplied names; generated names are recomputed over
        the renamed column set.
        """
        naming = self.dialect.naming
        current = table.replace_column(
            old.name, new.evolve(is_primary=old.is_primary, is_unique=old.is_unique)
        )
        renames: list[Rename] = []

        if old.is_primary:
            before = naming.primary_key_name(table, table.primary_column_names)
            after = naming.primary_key_name(current, current.primary_column_names)
            if before != after:
                renames.append(("primary", before, after))

        for unique in table.find_column_uniques(old.name):
            moved = unique.rename_column(old.name, new.name)
            if self._is_generated_name(
                unique.name, naming.unique_constraint_name(table, unique.column_names)
            ):
                moved = replace(
                    moved, name=naming.unique_constraint_name(current, moved.column_names)
                )
            current = current.replace_unique(unique, moved)
            if moved.name != unique.name:
                renames.append(("unique", unique, moved))

        column_names = [column.name for column in table.columns]
        for check in table.find_column_checks(old.name):
            moved = check.with_referenced_columns(column_names).rename_column(old.name, new.name)
            if self._is_generated_name(
                check.name, naming.check_constraint_name(table, check.expression)
            ):
                moved = replace(
                    moved, name=naming.check_constraint_name(current, moved.expression)
                )
            current = current.replace_check(check, moved)
            if moved.name != check.name:
                renames.append(("check", check, moved))

        for index in table.find_column_indices(old.name):
            moved = index.rename_column(old.name, new.name)
            if self._is_generated_name(
                index.name,
                naming.index_name(table, index.column_names, index.where),
                naming.unique_constraint_name(table, index.column_names),
            ):
                if index.name == naming.unique_constraint_name(table, index.column_names):
                    name = naming.unique_constraint_name(current, moved.column_names)
                else:
                    name = naming.index_name(current, moved.column_names, moved.where)
                moved = replace(moved, name=name)
            current = current.replace_index(index, moved)
            if moved.name != index.name:
                renames.append(("index", replace(moved, name=index.name), moved))

        for foreign_key in table.find_column_foreign_keys(old.name):
            moved = foreign_key.rename_column(old.name, new.name)
            if self._is_generated_name(
                foreign_key.name,
                naming.foreign_key_name(
                    table,
                    foreign_key.column_names,
                    foreign_key.referenced_table_name,
                    foreign_key.referenced_column_names,
                ),
            ):
                moved = replace(
                    moved,
                    name=naming.foreign_key_name(
                        current,
                        moved.column_names,
                        moved.referenced_table_name,
                        moved.referenced_column_names,
                    ),
                )
            current = current.replace_foreign_key(foreign_key, moved)
            if moved.name != foreign_key.name:
                renames.append(("foreign_key", replace(moved, name=foreign_key.name), moved))
        return current, renames

    def _rename_table_model(self, table: Table, new_name: str) -> tuple[Table, list[Rename]]:
        """Rename a table in the model, regenerating names that embed it."""
        naming = self.dialect.naming
        current = table.renamed(new_name)
        renames: list[Rename] = []

        primary = table.primary_column_names
        if primary:
            before = naming.primary_key_name(table, primary)
            after = naming.primary_key_name(current, primary)
            if before != after:
                renames.append(("primary", before, after))

        for unique in table.uniques:
            if self._is_generated_name(
                unique.name, naming.unique_constraint_name(table, unique.column_names)
            ):
                moved = replace(
                    unique, name=naming.unique_constraint_name(current, unique.column_names)
                )
                current = current.replace_unique(unique, moved)
                renames.append(("unique", unique, moved))

        for check in table.checks:
            if self._is_generated_name(
                check.name, naming.check_constraint_name(table, check.expression)
            ):
                moved = replace(
                    check, name=naming.check_constraint_name(current, check.expression)
                )
                current = current.replace_check(check, moved)
                renames.append(("check", check, moved))

        for index in table.indices:
            if index.name == naming.index_name(table, index.column_names, index.where):
                name = naming.index_name(current, index.column_names, index.where)
            elif index.name == naming.unique_constraint_name(table, index.column_names):
                name = naming.unique_constraint_name(current, index.column_names)
            else:
                continue
            moved = replace(index, name=name)
            current = current.replace_index(index, moved)
            renames.append(("index", index, moved))

        for foreign_key in table.foreign_keys:
            if self._is_generated_name(
                foreign_key.name,
                naming.foreign_key_name(
                    table,
                    foreign_key.column_names,
                    foreign_key.referenced_table_name,
                    foreign_key.referenced_column_names,
                ),
            ):
                moved = replace(
                    foreign_key,
                    name=naming.foreign_key_name(
                        current,
                        foreign_key.column_names,
                        foreign_key.referenced_table_name,
                        foreign_key.referenced_column_names,
                    ),
                )
                current = current.replace_foreign_key(foreign_key, moved)
                renames.append(("foreign_key", foreign_key, moved))
        return current, renames

    def _rename_steps(self, table: Table, renames: list[Rename]) -> Steps:
        """Statements renaming objects in the already renamed ``table``."""
        dialect = self.dialect
        steps = Steps()
        for kind, before, after in renames:
            if kind == "primary":
                if dialect.names_primary_key:
                    steps.add(
                        dialect.rename_constraint_sql(table, before, after),
                        dialect.rename_constraint_sql(table, after, before),
                    )
            elif kind == "unique":
                # Emulated uniques are renamed through their index
                if dialect.supports_unique_constraint:
                    steps.add(
                        dialect.rename_constraint_sql(table, before.name, after.name),
                        dialect.rename_constraint_sql(table, after.name, before.name),
                    )
            elif kind == "check":
                if dialect.supports_check_constraint:
                    steps.add(
                        dialect.rename_constraint_sql(table, before.name, after.name),
                        dialect.rename_constraint_sql(table, after.name, before.name),
                    )
            elif kind == "index":
                steps.add(
                    dialect.rename_index_sql(table, before, after),
                    dialect.rename_index_sql(table, after, before),
                )
            elif kind == "foreign_key":
                steps.add(
                    dialect.rename_foreign_key_sql(table, before, after),
                    dialect.rename_foreign_key_sql(table, after, before),
                )
        return steps

    def _change_column_model(self, table: Table, old: Column, new: Column) -> Table:
        current = table
        if old.name != new.name:
            current, _ = self._rename_column_model(current, old, old.evolve(name=new.name))
        before = current.get_column(new.name)
        current = current.replace_column(
            new.name, new.evolve(is_primary=before.is_primary, is_unique=before.is_unique)
        )
        if new.is_primary != before.is_primary:
            names = [name for name in current.primary_column_names if name != new.name]
            if new.is_primary:
                names.append(new.name)
            current = current.with_primary_columns(names)
        if new.is_unique != before.is_unique:
            current = self._with_unique(current, new.name, new.is_unique)
        return current

    def _change_column_plan(self, table: Table, old: Column, new: Column) -> tuple[Steps, Table]:
        dialect = self.dialect
        if dialect.requires_column_recreate(old, new):
            steps, current = self._drop_column_plan(table, old.name)
            add_steps, current = self._add_column_plan(current, new)
            return steps.extend(add_steps), current

        steps = Steps()
        current = table
        if old.name != new.name:
            renamed = old.evolve(name=new.name)
            current, renames = self._rename_column_model(table, old, renamed)
            steps.add(
                dialect.rename_column_sql(table, old, renamed),
                dialect.rename_column_sql(current, renamed, old),
            )
            steps.extend(dialect.rename_column_extras(table, old, renamed))
            steps.extend(self._rename_steps(current, renames))

        before = current.get_column(new.name)
        target = new.evolve(is_primary=before.is_primary, is_unique=before.is_unique)
        if dialect.has_column_changed(self._effective(before), self._effective(target)):
            steps.extend(
                dialect.alter_column_sql(current, self._effective(before), self._effective(target))
            )
        current = current.replace_column(new.name, target)

        if new.is_primary != before.is_primary:
            names = [name for name in current.primary_column_names if name != new.name]
            if new.is_primary:
                names.append(new.name)
            primary_steps, current = self._primary_key_plan(current, names)
            steps.extend(primary_steps)
        if new.is_unique != before.is_unique:
            unique_table = self._with_unique(current, new.name, new.is_unique)
            steps.extend(self._diff_steps(current, unique_table))
            current = unique_table
        return steps, current

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def get_databases(self) -> list[str]:
        return await self.introspector.get_databases()

    async def get_schemas(self, database: str | None = None) -> list[str]:
        return await self.introspector.get_schemas(database)

    async def has_database(self, name: str) -> bool:
        return await self.introspector.has_database(name)

    async def has_schema(self, name: str) -> bool:
        return await self.introspector.has_schema(name)

    async def has_table(self, target: Table | str) -> bool:
        name = target.name if isinstance(target, Table) else target
        return await self.introspector.has_table(name)

    async def has_column(self, target: Table | str, column_name: str) -> bool:
        name = target.name if isinstance(target, Table) else target
        return await self.introspector.has_column(name, column_name)

    async def get_current_database(self) -> str | None:
        return await self.introspector.get_current_database()

    async def get_current_schema(self) -> str | None:
        return await self.introspector.get_current_schema()

    async def get_table(self, name: str) -> Table | None:
        tables = await self.cache.load_tables([name])
        return tables[0] if tables else None

    async def get_tables(self, names: Sequence[str] | None = None) -> list[Table]:
        """Load tables, every table of the current database by default."""
        if names is None:
            names = await self.introspector.get_table_names()
        return await self.cache.load_tables(names)

    async def get_view(self, name: str) -> View | None:
        views = await self.cache.load_views([name])
        return views[0] if views else None

    async def get_views(self, names: Sequence[str] | None = None) -> list[View]:
        return await self.cache.load_views(names)

    # ------------------------------------------------------------------
    # Databases and schemas
    # ------------------------------------------------------------------

    async def create_database(self, name: str, if_not_exist: bool = False) -> None:
        """Create a database.

        Raises:
            UnsupportedOperation: If the dialect has no databases to create
        """
        up = self.dialect.create_database_sql(name, if_not_exist)
        if if_not_exist and await self.introspector.has_database(name):
            return
        self._log(f"Creating database {name}")
        await self._apply(Steps().add(up, self.dialect.drop_database_sql(name, False)))

    async def drop_database(self, name: str, if_exist: bool = False) -> None:
        up = self.dialect.drop_database_sql(name, if_exist)
        if if_exist and not await self.introspector.has_database(name):
            return
        self._log(f"Dropping database {name}")
        await self._apply(Steps().add(up, self.dialect.create_database_sql(name, False)))

    async def create_schema(self, path: str, if_not_exist: bool = False) -> None:
        up = self.dialect.create_schema_sql(path, if_not_exist)
        if if_not_exist and await self.introspector.has_schema(path):
            return
        self._log(f"Creating schema {path}")
        await self._apply(Steps().add(up, self.dialect.drop_schema_sql(path, False, False)))

    async def drop_schema(
        self, path: str, if_exist: bool = False, is_cascade: bool = False
    ) -> None:
        up = self.dialect.drop_schema_sql(path, if_exist, is_cascade)
        if if_exist and not await self.introspector.has_schema(path):
            return
        self._log(f"Dropping schema {path}")
        await self._apply(Steps().add(up, self.dialect.create_schema_sql(path, False)))

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def create_table(
        self,
        table: Table,
        if_not_exist: bool = False,
        create_foreign_keys: bool = True,
        create_indices: bool = True,
    ) -> Table | None:
        """Create a table with its keys, constraints and indices.

        Args:
            table: Table to create; missing object names are generated
            if_not_exist: Do nothing if the table already exists
            create_foreign_keys: Create the table's foreign keys
            create_indices: Create the table's indices

        Returns:
            The cached table model, or None if the table already existed
        """
        if if_not_exist and await self.introspector.has_table(table.name):
            return None
        dialect = self.dialect
        synthesizer = self.synthesizer
        table = self._normalize(table)
        if not create_foreign_keys:
            table = table.evolve(foreign_keys=())
        if not create_indices:
            # Indices that emulate unique constraints are part of the constraint
            kept = set() if dialect.supports_unique_constraint else {u.name for u in table.uniques}
            table = table.evolve(indices=[index for index in table.indices if index.name in kept])

        steps = dialect.create_table_prelude(table)
        steps.add(
            synthesizer.create_table_sql(table, if_not_exist, create_foreign_keys),
            synthesizer.drop_table_sql(table),
        )
        if not dialect.inline_indices:
            for index in table.indices:
                steps.add(
                    synthesizer.create_index_sql(table, index),
                    synthesizer.drop_index_sql(table, index),
                )
        for statement in dialect.table_comment_statements(table):
            steps.add(statement)

        self._log(f"Creating table {table.name}")
        await self._apply(steps)
        self.cache.add_table(table)
        return table

    async def create_tables(self, tables: Sequence[Table], **options: Any) -> None:
        for table in tables:
            await self.create_table(table, **options)

    async def drop_table(
        self,
        target: Table | str,
        if_exist: bool = False,
        drop_foreign_keys: bool = True,
        drop_indices: bool = True,
    ) -> None:
        """Drop a table, recording how to recreate it with all its objects.

        Args:
            target: Table or qualified name
            if_exist: Do nothing if the table does not exist
            drop_foreign_keys: Drop foreign keys before the table
            drop_indices: Drop indices before the table
        """
        name = target.name if isinstance(target, Table) else target
        if if_exist and name not in self.cache and not await self.introspector.has_table(name):
            return
        dialect = self.dialect
        synthesizer = self.synthesizer
        table = await self.resolve(target)

        steps = Steps()
        if not dialect.inline_indices:
            for index in table.indices:
                if drop_indices:
                    steps.add(
                        synthesizer.drop_index_sql(table, index),
                        synthesizer.create_index_sql(table, index),
                    )
                else:
                    steps.add(None, synthesizer.create_index_sql(table, index))
        separate_foreign_keys = drop_foreign_keys and not dialect.recreates_table_on_alter
        if separate_foreign_keys:
            for foreign_key in table.foreign_keys:
                steps.add(
                    synthesizer.drop_foreign_key_sql(table, foreign_key),
                    synthesizer.create_foreign_key_sql(table, foreign_key),
                )
        steps.add(
            synthesizer.drop_table_sql(table),
            [
                synthesizer.create_table_sql(
                    table, create_foreign_keys=not separate_foreign_keys
                ),
                *dialect.table_comment_statements(table),
            ],
        )
        steps.extend(dialect.create_table_prelude(table).inverted())

        self._log(f"Dropping table {table.name}")
        await self._apply(steps)
        self.cache.evict_table(table.name)

    async def rename_table(self, target: Table | str, new_name: str) -> Table:
        """Rename a table and every generated object name embedding it.

        An unqualified ``new_name`` keeps the database and schema of the old
        name.
        """
        dialect = self.dialect
        table = await self.resolve(target)
        if "." not in new_name:
            new_name = dialect.with_table_name(table, new_name)
        new_table, renames = self._rename_table_model(table, new_name)

        steps = Steps()
        if dialect.recreates_table_on_alter:
            steps.extend(dialect.rename_table_sql(table.name, new_name))
            plain = table.renamed(new_name)
            if plain != new_table:
                steps.extend(self._recreate(plain, new_table))
        else:
            switch = await self._database_switch(table)
            if switch:
                steps.add(switch[0], switch[1])
            steps.extend(dialect.rename_table_sql(table.name, new_name))
            steps.extend(self._rename_steps(new_table, renames))
            steps.extend(dialect.rename_table_extras(table, new_table))
            if switch:
                steps.add(switch[1], switch[0])

        self._log(f"Renaming table {table.name} to {new_name}")
        return await self._commit(table, steps, new_table)

    async def _database_switch(self, table: Table) -> tuple[str, str] | None:
        """``USE`` statements entering the table's database and leaving it."""
        dialect = self.dialect
        segments = dialect.split_path(table)
        if not dialect.requires_db_switch_for_cross_db_rename or len(segments) != 3:
            return None
        current = await self.introspector.get_current_database()
        if current is None or segments[0] == current:
            return None
        return dialect.use_database_sql(segments[0]), dialect.use_database_sql(current)

    async def clear_table(self, target: Table | str) -> None:
        """Delete every row of a table, always executing immediately."""
        name = target.name if isinstance(target, Table) else target
        await self.session.query(self.dialect.clear_table_sql(name))

    async def clear_database(self, database: str | None = None) -> None:
        """Drop every view and table of a database in one transaction.

        If any statement fails the transaction is rolled back and the
        original error is raised; a failing rollback is only logged.

        Args:
            database: Database to clear, the current one by default
        """
        dialect = self.dialect
        introspector = self.introspector
        session = self.session
        if (
            database is not None
            and dialect.supports_databases
            and not await introspector.has_database(database)
        ):
            return

        self._log(f"Clearing database {database or '(current)'}")
        started = not session.is_transaction_active
        if started:
            await session.start_transaction()
        try:
            for name, materialized in await introspector.get_view_names(database):
                view = View(name=name, expression="", materialized=materialized)
                await session.query(dialect.drop_view_sql(view))

            table_names = await introspector.get_table_names(database)
            disable_checks = dialect.foreign_key_checks_sql(False)
            if disable_checks:
                await session.query(disable_checks)
            elif dialect.drops_foreign_keys_before_clear and table_names:
                for table in await self.cache.load_tables(table_names):
                    for foreign_key in table.foreign_keys:
                        await session.query(dialect.drop_foreign_key_sql(table, foreign_key))

            for name in table_names:
                await session.query(dialect.drop_table_for_clear_sql(name))
            for name in await introspector.get_enum_type_names():
                await session.query(dialect.drop_enum_type_for_clear_sql(name))

            enable_checks = dialect.foreign_key_checks_sql(True)
            if enable_checks:
                await session.query(enable_checks)
            if started:
                await session.commit_transaction()
        except Exception:
            if started and session.is_transaction_active:
                try:
                    await session.rollback_transaction()
                except Exception as rollback_error:
                    logger.warning(f"Rollback after failed clear failed: {rollback_error}")
            raise
        finally:
            self.cache.clear()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def _ensure_metadata_table(self) -> None:
        if self.metadata_table in self.cache:
            return
        if await self.introspector.has_table(self.metadata_table):
            return
        await self.create_table(self.synthesizer.metadata_table(self.metadata_table))

    async def create_view(self, view: View) -> None:
        """Create a view and record its definition in the metadata table."""
        await self._ensure_metadata_table()
        synthesizer = self.synthesizer
        steps = Steps()
        steps.add(synthesizer.create_view_sql(view), synthesizer.drop_view_sql(view))
        steps.add(
            synthesizer.insert_view_metadata_sql(self.metadata_table, view),
            synthesizer.delete_view_metadata_sql(self.metadata_table, view),
        )
        self._log(f"Creating view {view.name}")
        await self._apply(steps)
        self.cache.add_view(view)

    async def drop_view(self, target: View | str) -> None:
        view = target if isinstance(target, View) else await self.cache.get_cached_view(target)
        synthesizer = self.synthesizer
        steps = Steps()
        steps.add(
            synthesizer.delete_view_metadata_sql(self.metadata_table, view),
            synthesizer.insert_view_metadata_sql(self.metadata_table, view),
        )
        steps.add(synthesizer.drop_view_sql(view), synthesizer.create_view_sql(view))
        self._log(f"Dropping view {view.name}")
        await self._apply(steps)
        self.cache.evict_view(view.name)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    async def add_column(self, target: Table | str, column: Column) -> Table:
        """Add a column, its key membership and its unique constraint."""
        table = await self.resolve(target)
        if self.dialect.recreates_table_on_alter:
            new_table = table.add_column(column.evolve(is_primary=False, is_unique=False))
            if column.is_primary:
                new_table = new_table.with_primary_columns(
                    table.primary_column_names + [column.name]
                )
            if column.is_unique:
                new_table = self._with_unique(new_table, column.name, True)
            steps = self._recreate(table, new_table)
        else:
            steps, new_table = self._add_column_plan(table, column)
        self._log(f"Adding column {column.name} to {table.name}")
        return await self._commit(table, steps, new_table)

    async def add_columns(self, target: Table | str, columns: Sequence[Column]) -> Table:
        table = await self.resolve(target)
        for column in columns:
            table = await self.add_column(table, column)
        return table

    async def rename_column(
        self, target: Table | str, old: Column | str, new: Column | str
    ) -> Table:
        """Rename a column; a ``Column`` as ``new`` may also change it."""
        table = await self.resolve(target)
        old_column = table.get_column(old.name if isinstance(old, Column) else old)
        new_column = old_column.evolve(name=new) if isinstance(new, str) else new
        return await self.change_column(table, old_column, new_column)

    async def change_column(
        self, target: Table | str, old: Column | str, new: Column
    ) -> Table:
        """Change a column in place, or drop and re-add it.

        Type, length and identity changes are destructive and re-add the
        column. A rename also renames every generated object name built from
        the column.
        """
        table = await self.resolve(target)
        old_column = table.get_column(old.name if isinstance(old, Column) else old)
        if self.dialect.recreates_table_on_alter:
            new_table = self._change_column_model(table, old_column, new)
            renamed = {new.name: old_column.name} if new.name != old_column.name else None
            steps = self._recreate(table, new_table, renamed)
        else:
            steps, new_table = self._change_column_plan(table, old_column, new)
        self._log(f"Changing column {old_column.name} of {table.name}")
        return await self._commit(table, steps, new_table)

    async def change_columns(
        self, target: Table | str, changes: Sequence[tuple[Column | str, Column]]
    ) -> Table:
        table = await self.resolve(target)
        for old, new in changes:
            table = await self.change_column(table, old, new)
        return table

    async def drop_column(self, target: Table | str, column: Column | str) -> Table:
        """Drop a column together with every index and constraint using it."""
        table = await self.resolve(target)
        name = column.name if isinstance(column, Column) else column
        table.get_column(name)
        if self.dialect.recreates_table_on_alter:
            new_table = self._without_column_dependents(table, name)
            primary = new_table.primary_column_names
            if name in primary:
                new_table = new_table.with_primary_columns(
                    [column_name for column_name in primary if column_name != name]
                )
            new_table = new_table.remove_column(name)
            steps = self._recreate(table, new_table)
        else:
            steps, new_table = self._drop_column_plan(table, name)
        self._log(f"Dropping column {name} from {table.name}")
        return await self._commit(table, steps, new_table)

    async def drop_columns(
        self, target: Table | str, columns: Sequence[Column | str]
    ) -> Table:
        table = await self.resolve(target)
        for column in columns:
            table = await self.drop_column(table, column)
        return table

    # ------------------------------------------------------------------
    # Primary keys
    # ------------------------------------------------------------------

    async def _set_primary_key(self, target: Table | str, column_names: Sequence[str]) -> Table:
        table = await self.resolve(target)
        for name in column_names:
            table.get_column(name)
        if self.dialect.recreates_table_on_alter:
            new_table = table.with_primary_columns(column_names)
            steps = self._recreate(table, new_table)
        else:
            steps, new_table = self._primary_key_plan(table, column_names)
        self._log(f"Setting primary key of {table.name} to {list(column_names)}")
        return await self._commit(table, steps, new_table)

    async def create_primary_key(self, target: Table | str, column_names: Sequence[str]) -> Table:
        return await self._set_primary_key(target, column_names)

    async def update_primary_keys(self, target: Table | str, columns: Sequence[Column]) -> Table:
        """Make exactly ``columns`` the primary key."""
        return await self._set_primary_key(target, [column.name for column in columns])

    async def drop_primary_key(self, target: Table | str) -> Table:
        return await self._set_primary_key(target, [])

    # ------------------------------------------------------------------
    # Unique, check and exclusion constraints
    # ------------------------------------------------------------------

    async def create_unique_constraint(
        self, target: Table | str, unique: UniqueConstraint
    ) -> Table:
        """Create a unique constraint.

        Raises:
            UnsupportedOperation: If the dialect only has unique indices
        """
        self.synthesizer.require("unique")
        table = await self.resolve(target)
        if not unique.name:
            unique = replace(
                unique,
                name=self.dialect.naming.unique_constraint_name(table, unique.column_names),
            )
        new_table = table.add_unique(unique)
        if len(unique.column_names) == 1:
            new_table = new_table.update_column(unique.column_names[0], is_unique=True)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.create_unique_sql(table, unique),
                self.synthesizer.drop_unique_sql(table, unique),
            )
        return await self._commit(table, steps, new_table)

    async def create_unique_constraints(
        self, target: Table | str, uniques: Sequence[UniqueConstraint]
    ) -> Table:
        table = await self.resolve(target)
        for unique in uniques:
            table = await self.create_unique_constraint(table, unique)
        return table

    async def drop_unique_constraint(
        self, target: Table | str, unique: UniqueConstraint | str
    ) -> Table:
        self.synthesizer.require("unique")
        table = await self.resolve(target)
        name = unique.name if isinstance(unique, UniqueConstraint) else unique
        found = table.find_unique(name or "")
        if found is None:
            raise NotFound("Unique constraint", name or "", table.name)
        new_table = table.remove_unique(found)
        if len(found.column_names) == 1:
            new_table = new_table.update_column(found.column_names[0], is_unique=False)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.drop_unique_sql(table, found),
                self.synthesizer.create_unique_sql(table, found),
            )
        return await self._commit(table, steps, new_table)

    async def drop_unique_constraints(
        self, target: Table | str, uniques: Sequence[UniqueConstraint | str]
    ) -> Table:
        table = await self.resolve(target)
        for unique in uniques:
            table = await self.drop_unique_constraint(table, unique)
        return table

    async def create_check_constraint(self, target: Table | str, check: CheckConstraint) -> Table:
        self.synthesizer.require("check")
        table = await self.resolve(target)
        check = check.with_referenced_columns(column.name for column in table.columns)
        if not check.name:
            check = replace(
                check, name=self.dialect.naming.check_constraint_name(table, check.expression)
            )
        new_table = table.add_check(check)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.create_check_sql(table, check),
                self.synthesizer.drop_check_sql(table, check),
            )
        return await self._commit(table, steps, new_table)

    async def create_check_constraints(
        self, target: Table | str, checks: Sequence[CheckConstraint]
    ) -> Table:
        table = await self.resolve(target)
        for check in checks:
            table = await self.create_check_constraint(table, check)
        return table

    async def drop_check_constraint(
        self, target: Table | str, check: CheckConstraint | str
    ) -> Table:
        self.synthesizer.require("check")
        table = await self.resolve(target)
        name = check.name if isinstance(check, CheckConstraint) else check
        found = table.find_check(name or "")
        if found is None:
            raise NotFound("Check constraint", name or "", table.name)
        new_table = table.remove_check(found)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.drop_check_sql(table, found),
                self.synthesizer.create_check_sql(table, found),
            )
        return await self._commit(table, steps, new_table)

    async def drop_check_constraints(
        self, target: Table | str, checks: Sequence[CheckConstraint | str]
    ) -> Table:
        table = await self.resolve(target)
        for check in checks:
            table = await self.drop_check_constraint(table, check)
        return table

    async def create_exclusion_constraint(
        self, target: Table | str, exclusion: ExclusionConstraint
    ) -> Table:
        self.synthesizer.require("exclusion")
        table = await self.resolve(target)
        if not exclusion.name:
            exclusion = replace(
                exclusion,
                name=self.dialect.naming.exclusion_constraint_name(table, exclusion.expression),
            )
        steps = Steps().add(
            self.synthesizer.create_exclusion_sql(table, exclusion),
            self.synthesizer.drop_exclusion_sql(table, exclusion),
        )
        return await self._commit(table, steps, table.add_exclusion(exclusion))

    async def create_exclusion_constraints(
        self, target: Table | str, exclusions: Sequence[ExclusionConstraint]
    ) -> Table:
        table = await self.resolve(target)
        for exclusion in exclusions:
            table = await self.create_exclusion_constraint(table, exclusion)
        return table

    async def drop_exclusion_constraint(
        self, target: Table | str, exclusion: ExclusionConstraint | str
    ) -> Table:
        self.synthesizer.require("exclusion")
        table = await self.resolve(target)
        name = exclusion.name if isinstance(exclusion, ExclusionConstraint) else exclusion
        found = table.find_exclusion(name or "")
        if found is None:
            raise NotFound("Exclusion constraint", name or "", table.name)
        steps = Steps().add(
            self.synthesizer.drop_exclusion_sql(table, found),
            self.synthesizer.create_exclusion_sql(table, found),
        )
        return await self._commit(table, steps, table.remove_exclusion(found))

    async def drop_exclusion_constraints(
        self, target: Table | str, exclusions: Sequence[ExclusionConstraint | str]
    ) -> Table:
        table = await self.resolve(target)
        for exclusion in exclusions:
            table = await self.drop_exclusion_constraint(table, exclusion)
        return table

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    async def create_foreign_key(self, target: Table | str, foreign_key: ForeignKey) -> Table:
        table = await self.resolve(target)
        if not foreign_key.name:
            foreign_key = replace(
                foreign_key,
                name=self.dialect.naming.foreign_key_name(
                    table,
                    foreign_key.column_names,
                    foreign_key.referenced_table_name,
                    foreign_key.referenced_column_names,
                ),
            )
        new_table = table.add_foreign_key(foreign_key)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.create_foreign_key_sql(table, foreign_key),
                self.synthesizer.drop_foreign_key_sql(table, foreign_key),
            )
        return await self._commit(table, steps, new_table)

    async def create_foreign_keys(
        self, target: Table | str, foreign_keys: Sequence[ForeignKey]
    ) -> Table:
        table = await self.resolve(target)
        for foreign_key in foreign_keys:
            table = await self.create_foreign_key(table, foreign_key)
        return table

    async def drop_foreign_key(
        self, target: Table | str, foreign_key: ForeignKey | str
    ) -> Table:
        table = await self.resolve(target)
        name = foreign_key.name if isinstance(foreign_key, ForeignKey) else foreign_key
        found = table.find_foreign_key(name or "")
        if found is None:
            raise NotFound("Foreign key", name or "", table.name)
        new_table = table.remove_foreign_key(found)
        if self.dialect.recreates_table_on_alter:
            steps = self._recreate(table, new_table)
        else:
            steps = Steps().add(
                self.synthesizer.drop_foreign_key_sql(table, found),
                self.synthesizer.create_foreign_key_sql(table, found),
            )
        return await self._commit(table, steps, new_table)

    async def drop_foreign_keys(
        self, target: Table | str, foreign_keys: Sequence[ForeignKey | str]
    ) -> Table:
        table = await self.resolve(target)
        for foreign_key in foreign_keys:
            table = await self.drop_foreign_key(table, foreign_key)
        return table

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    async def create_index(self, target: Table | str, index: Index) -> Table:
        table = await self.resolve(target)
        if not index.name:
            index = replace(
                index,
                name=self.dialect.naming.index_name(table, index.column_names, index.where),
            )
        steps = Steps().add(
            self.synthesizer.create_index_sql(table, index),
            self.synthesizer.drop_index_sql(table, index),
        )
        return await self._commit(table, steps, table.add_index(index))

    async def create_indices(self, target: Table | str, indices: Sequence[Index]) -> Table:
        table = await self.resolve(target)
        for index in indices:
            table = await self.create_index(table, index)
        return table

    async def drop_index(self, target: Table | str, index: Index | str) -> Table:
        table = await self.resolve(target)
        name = index.name if isinstance(index, Index) else index
        found = table.find_index(name or "")
        if found is None:
            raise NotFound("Index", name or "", table.name)
        steps = Steps().add(
            self.synthesizer.drop_index_sql(table, found),
            self.synthesizer.create_index_sql(table, found),
        )
        return await self._commit(table, steps, table.remove_index(found))

    async def drop_indices(self, target: Table | str, indices: Sequence[Index | str]) -> Table:
        table = await self.resolve(target)
        for index in indices:
            table = await self.drop_index(table, index)
        return table


__all__ = ["MigrationExecutor", "SqlInMemory"]
