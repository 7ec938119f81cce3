"""Pure builders for schema-object DDL."""

from collections.abc import Mapping, Sequence

from schemaforge.dialects import Dialect
from schemaforge.errors import UnsupportedOperation
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
from schemaforge.statements import Query, Steps

TEMPORARY_TABLE_PREFIX = "temporary_"


class DdlSynthesizer:
    """Builds create and drop statements for every schema-object kind.

    Each ``drop_*`` builder is the structural inverse of the matching
    ``create_*`` builder when given the same object. Nothing here touches a
    connection or the cache.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _inlines_primary_key(self, table: Table) -> bool:
        return self.dialect.inline_single_primary_key and len(table.primary_columns) == 1

    def create_table_sql(
        self,
        table: Table,
        if_not_exist: bool = False,
        create_foreign_keys: bool = True,
    ) -> Query:
        """Build CREATE TABLE with columns, keys and inline constraints.

        Indices are only part of the statement on dialects that declare them
        inline; elsewhere the caller creates them with ``create_index_sql``.

        Args:
            table: Table to create
            if_not_exist: Add IF NOT EXISTS
            create_foreign_keys: Declare the table's foreign keys inline

        Returns:
            CREATE TABLE statement
        """
        dialect = self.dialect
        inline_primary = self._inlines_primary_key(table)
        definitions = [
            dialect.column_sql(table, column, skip_primary=not inline_primary)
            for column in table.columns
        ]
        if dialect.supports_unique_constraint:
            definitions.extend(dialect.unique_clause(unique) for unique in table.uniques)
        if dialect.supports_check_constraint:
            definitions.extend(dialect.check_clause(check) for check in table.checks)
        if dialect.supports_exclusion_constraint:
            definitions.extend(
                dialect.exclusion_clause(exclusion) for exclusion in table.exclusions
            )
        if dialect.inline_indices:
            definitions.extend(dialect.index_clause(index) for index in table.indices)
        if create_foreign_keys:
            definitions.extend(
                dialect.foreign_key_clause(foreign_key) for foreign_key in table.foreign_keys
            )
        primary_columns = table.primary_column_names
        if primary_columns and not inline_primary:
            definitions.append(dialect.primary_key_clause(table, primary_columns))

        exists = "IF NOT EXISTS " if if_not_exist else ""
        return Query(
            f"CREATE TABLE {exists}{dialect.escape_path(table)} "
            f"({', '.join(definitions)}){dialect.table_options(table)}"
        )

    def drop_table_sql(self, target: Table | str, if_exist: bool = False) -> Query:
        return Query(self.dialect.drop_table_sql(target, if_exist))

    def recreate_table_sql(
        self,
        old: Table,
        new: Table,
        renamed_columns: Mapping[str, str] | None = None,
    ) -> Steps:
        """Rebuild a table under a new definition, keeping its rows.

        Rows are copied into ``temporary_<name>``, the old table is dropped
        and recreated under its own name from the new definition, and the
        rows are copied back. Recreating under the original name keeps the
        references of child tables intact, and the dialect's rebuild guard
        suspends foreign key enforcement while the parent is missing.

        Args:
            old: Current table
            new: Desired table, with the same name
            renamed_columns: New column name mapped to the old one it copies

        Returns:
            Statements performing the rebuild and its exact inverse
        """
        renamed_columns = renamed_columns or {}
        reverse = {source: target for target, source in renamed_columns.items()}
        return Steps().add(
            self._rebuild_queries(old, new, renamed_columns),
            self._rebuild_queries(new, old, reverse),
        )

    def _rebuild_queries(
        self, old: Table, new: Table, renamed_columns: Mapping[str, str]
    ) -> list[Query]:
        dialect = self.dialect
        temporary = new.renamed(
            dialect.with_table_name(new, TEMPORARY_TABLE_PREFIX + dialect.table_name_only(new))
        )

        new_columns = []
        old_columns = []
        for column in new.columns:
            source = renamed_columns.get(column.name, column.name)
            origin = old.find_column(source)
            if origin is None or column.as_expression or origin.as_expression:
                continue
            new_columns.append(column.name)
            old_columns.append(origin.name)
        new_list = dialect.escape_columns(new_columns)
        old_list = dialect.escape_columns(old_columns)

        before, after = dialect.table_rebuild_guard()
        queries = [Query(statement) for statement in before]
        queries.extend(self.drop_index_sql(old, index) for index in old.indices)
        queries.append(self.create_table_sql(temporary))
        if new_columns:
            queries.append(
                Query(
                    f"INSERT INTO {dialect.escape_path(temporary)}({new_list}) "
                    f"SELECT {old_list} FROM {dialect.escape_path(old)}"
                )
            )
        queries.append(self.drop_table_sql(old))
        queries.append(self.create_table_sql(new))
        if new_columns:
            queries.append(
                Query(
                    f"INSERT INTO {dialect.escape_path(new)}({new_list}) "
                    f"SELECT {new_list} FROM {dialect.escape_path(temporary)}"
                )
            )
        queries.append(self.drop_table_sql(temporary))
        queries.extend(self.create_index_sql(new, index) for index in new.indices)
        queries.extend(Query(statement) for statement in after)
        return queries

    # ------------------------------------------------------------------
    # Views and the view registry
    # ------------------------------------------------------------------

    def create_view_sql(self, view: View) -> Query:
        return Query(self.dialect.create_view_sql(view))

    def drop_view_sql(self, view: View) -> Query:
        return Query(self.dialect.drop_view_sql(view))

    def metadata_table(self, name: str) -> Table:
        """Model of the table that records view definitions."""
        return Table(
            name=name,
            columns=[
                Column(name="type", type="varchar", length="255"),
                Column(name="database", type="varchar", length="255", is_nullable=True),
                Column(name="schema", type="varchar", length="255", is_nullable=True),
                Column(name="name", type="varchar", length="255", is_nullable=True),
                Column(name="value", type="text", is_nullable=True),
            ],
        )

    def _view_metadata(self, view: View) -> dict[str, str | None]:
        segments = view.name.split(".")
        database = None
        schema = None
        if self.dialect.supports_schemas:
            schema = segments[-2] if len(segments) > 1 else None
            database = segments[-3] if len(segments) > 2 else None
        elif len(segments) > 1:
            database = segments[-2]
        return {
            "type": "MATERIALIZED_VIEW" if view.materialized else "VIEW",
            "database": database,
            "schema": schema,
            "name": segments[-1],
        }

    def insert_view_metadata_sql(self, metadata_table: str, view: View) -> Query:
        """Record a view definition in the metadata table.

        Values are inlined as literals, since parameter markers differ
        between drivers.
        """
        dialect = self.dialect
        values = self._view_metadata(view)
        values["value"] = view.expression
        columns = ", ".join(dialect.escape(column) for column in values)
        literals = ", ".join(dialect.literal(value) for value in values.values())
        return Query(
            f"INSERT INTO {dialect.escape_path(metadata_table)}({columns}) VALUES ({literals})"
        )

    def delete_view_metadata_sql(self, metadata_table: str, view: View) -> Query:
        dialect = self.dialect
        conditions = []
        for column, value in self._view_metadata(view).items():
            if value is None:
                conditions.append(f"{dialect.escape(column)} IS NULL")
            else:
                conditions.append(f"{dialect.escape(column)} = {dialect.literal(value)}")
        return Query(
            f"DELETE FROM {dialect.escape_path(metadata_table)} WHERE {' AND '.join(conditions)}"
        )

    # ------------------------------------------------------------------
    # Indices and keys
    # ------------------------------------------------------------------

    def create_index_sql(self, table: Table, index: Index) -> Query:
        return Query(self.dialect.create_index_sql(table, index))

    def drop_index_sql(self, table: Table, index: Index) -> Query:
        return Query(self.dialect.drop_index_sql(table, index))

    def create_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> Query:
        return Query(self.dialect.create_primary_key_sql(table, column_names))

    def drop_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> Query:
        return Query(self.dialect.drop_primary_key_sql(table, column_names))

    def create_foreign_key_sql(self, table: Table, foreign_key: ForeignKey) -> Query:
        return Query(self.dialect.create_foreign_key_sql(table, foreign_key))

    def drop_foreign_key_sql(self, table: Table, foreign_key: ForeignKey) -> Query:
        return Query(self.dialect.drop_foreign_key_sql(table, foreign_key))

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def require(self, kind: str) -> None:
        """Fail unless the dialect has native ``kind`` constraints.

        Args:
            kind: ``unique``, ``check`` or ``exclusion``

        Raises:
            UnsupportedOperation: If the dialect cannot create the constraint
        """
        supported = {
            "unique": self.dialect.supports_unique_constraint,
            "check": self.dialect.supports_check_constraint,
            "exclusion": self.dialect.supports_exclusion_constraint,
        }[kind]
        if not supported:
            raise UnsupportedOperation(f"{self.dialect.name} does not support {kind} constraints")

    def create_unique_sql(self, table: Table, unique: UniqueConstraint) -> Query:
        self.require("unique")
        return Query(self.dialect.create_unique_sql(table, unique))

    def drop_unique_sql(self, table: Table, unique: UniqueConstraint) -> Query:
        self.require("unique")
        return Query(self.dialect.drop_unique_sql(table, unique))

    def create_check_sql(self, table: Table, check: CheckConstraint) -> Query:
        self.require("check")
        return Query(self.dialect.create_check_sql(table, check))

    def drop_check_sql(self, table: Table, check: CheckConstraint) -> Query:
        self.require("check")
        return Query(self.dialect.drop_check_sql(table, check))

    def create_exclusion_sql(self, table: Table, exclusion: ExclusionConstraint) -> Query:
        self.require("exclusion")
        return Query(self.dialect.create_exclusion_sql(table, exclusion))

    def drop_exclusion_sql(self, table: Table, exclusion: ExclusionConstraint) -> Query:
        self.require("exclusion")
        return Query(self.dialect.drop_exclusion_sql(table, exclusion))


__all__ = ["DdlSynthesizer", "Query", "TEMPORARY_TABLE_PREFIX"]
