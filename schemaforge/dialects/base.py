"""Dialect capability object and the SQL templates shared by most backends."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from schemaforge.errors import UnsupportedOperation
from schemaforge.interfaces.driver import DriverResult
from schemaforge.naming import DefaultNamingStrategy, NamingStrategy
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
from schemaforge.statements import Steps
from schemaforge.types import IsolationLevel


@dataclass
class QueryResult:
    """Structured result of a single statement.

    Attributes:
        raw: Dialect specific payload, shaped like the native driver result
        records: Row list, when the statement produced one
        affected: Number of rows changed, when the driver reports it
    """

    raw: Any = None
    records: list[dict[str, Any]] | None = None
    affected: int | None = None


class Dialect(ABC):
    """Capabilities and statement templates of one database family.

    The generic synthesizer and migration executor only branch on the flags
    below; anything that differs in SQL text lives behind a method here.
    """

    name: str = ""
    aliases: tuple[str, ...] = ()
    quote_open: str = '"'
    quote_close: str = '"'
    max_alias_length: int | None = None

    supports_unique_constraint: bool = True
    supports_check_constraint: bool = True
    supports_exclusion_constraint: bool = False
    supports_identity_columns: bool = False
    identity_requires_primary_key: bool = False
    requires_db_switch_for_cross_db_rename: bool = False
    requires_query_ordering: bool = False
    recreates_table_on_alter: bool = False
    supports_schemas: bool = False
    supports_databases: bool = False
    names_primary_key: bool = True
    # SQLite: a lone primary key column is declared inline, before AUTOINCREMENT
    inline_single_primary_key: bool = False
    # MySQL: ADD COLUMN may carry PRIMARY KEY when the table has none yet
    inline_primary_key_on_add: bool = False
    # MySQL: indices are declared inside CREATE TABLE
    inline_indices: bool = False
    uses_default_constraints: bool = False
    supports_transactional_ddl: bool = True
    # SQL Server: foreign keys must go before their tables when clearing
    drops_foreign_keys_before_clear: bool = False
    # "type" (CREATE TYPE), "inline" (enum(...)), "check" (CHECK ... IN)
    enum_strategy: str = "inline"
    uuid_generator: str | None = None

    def __init__(
        self,
        naming: NamingStrategy | None = None,
        database: str | None = None,
        schema: str | None = None,
    ) -> None:
        """Initialize dialect.

        Args:
            naming: Naming strategy used for constraint names
            database: Default database for unqualified table names
            schema: Default schema for unqualified table names
        """
        self.naming = naming or DefaultNamingStrategy()
        self.database = database
        self.schema = schema

    # ------------------------------------------------------------------
    # Identifiers and literals
    # ------------------------------------------------------------------

    def escape(self, identifier: str) -> str:
        """Quote a single identifier."""
        doubled = identifier.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{doubled}{self.quote_close}"

    def escape_columns(self, names: Sequence[str], separator: str = ", ") -> str:
        return separator.join(self.escape(name) for name in names)

    def split_path(self, target: Table | View | str) -> list[str]:
        """Split a qualified name, applying the configured default schema."""
        name = target if isinstance(target, str) else target.name
        segments = name.split(".")
        if self.supports_schemas and self.schema and len(segments) == 1:
            segments = [self.schema, name]
        return segments

    def escape_path(self, target: Table | View | str) -> str:
        """Quote every segment of a qualified table or view name."""
        return ".".join(
            segment if segment == "" else self.escape(segment)
            for segment in self.split_path(target)
        )

    @staticmethod
    def table_name_only(target: Table | View | str) -> str:
        name = target if isinstance(target, str) else target.name
        return name.split(".")[-1]

    def path_prefix(self, target: Table | View | str) -> str | None:
        """Everything but the last segment of a qualified name."""
        name = target if isinstance(target, str) else target.name
        if "." not in name:
            return None
        return name.rsplit(".", 1)[0]

    def with_table_name(self, target: Table | str, new_name: str) -> str:
        """Replace the last segment of a qualified name."""
        prefix = self.path_prefix(target)
        return f"{prefix}.{new_name}" if prefix else new_name

    def literal(self, value: Any) -> str:
        """Render a Python value as an SQL literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"

    def escape_comment(self, comment: str | None) -> str:
        if not comment:
            return "NULL"
        return self.literal(comment.replace("\u0000", ""))

    # ------------------------------------------------------------------
    # Column fragments
    # ------------------------------------------------------------------

    def full_type(self, column: Column) -> str:
        """Render a column type with its length or precision."""
        sql = column.type
        if column.length:
            sql += f"({column.length})"
        elif column.precision is not None and column.scale is not None:
            sql += f"({column.precision},{column.scale})"
        elif column.precision is not None:
            sql += f"({column.precision})"
        if column.is_array:
            sql += " array"
        return sql

    @abstractmethod
    def column_sql(
        self,
        table: Table,
        column: Column,
        *,
        skip_identity: bool = False,
        skip_name: bool = False,
        emit_default: bool = True,
        skip_primary: bool = True,
    ) -> str:
        """Build the column definition fragment.

        Args:
            table: Table the column belongs to
            column: Column to render
            skip_identity: Leave out identity / auto increment clauses
            skip_name: Leave out the leading column name
            emit_default: Include the DEFAULT clause
            skip_primary: Leave out an inline PRIMARY KEY clause

        Returns:
            Column definition SQL
        """
        pass

    def has_column_changed(self, old: Column, new: Column) -> bool:
        """Check if attributes that an in-place ALTER can change differ."""
        return (
            old.name != new.name
            or old.is_nullable != new.is_nullable
            or old.default != new.default
            or old.precision != new.precision
            or old.scale != new.scale
            or old.comment != new.comment
            or old.charset != new.charset
            or old.collation != new.collation
            or old.as_expression != new.as_expression
            or old.enum != new.enum
            or old.enum_name != new.enum_name
        )

    def requires_column_recreate(self, old: Column, new: Column) -> bool:
        """Decide if a change must be applied as drop-then-add."""
        identity_changed = (
            old.is_generated != new.is_generated
            and new.generation_strategy.value != "uuid"
        )
        return (
            old.type != new.type
            or old.length != new.length
            or old.is_array != new.is_array
            or old.generated_type != new.generated_type
            or identity_changed
        )

    # ------------------------------------------------------------------
    # Transactions and results
    # ------------------------------------------------------------------

    def begin_statements(self, isolation_level: IsolationLevel | None) -> list[str]:
        statements = ["START TRANSACTION"]
        if isolation_level:
            statements.append(
                f"SET TRANSACTION ISOLATION LEVEL {IsolationLevel(isolation_level).value}"
            )
        return statements

    def commit_statement(self) -> str:
        return "COMMIT"

    def rollback_statement(self) -> str:
        return "ROLLBACK"

    @staticmethod
    def statement_kind(sql: str) -> str:
        stripped = sql.lstrip()
        return stripped.split(None, 1)[0].upper() if stripped else ""

    def normalize_result(self, sql: str, result: DriverResult) -> QueryResult:
        """Map a driver result onto the structured result shape."""
        return QueryResult(
            raw=result.rows,
            records=result.rows,
            affected=result.rowcount,
        )

    # ------------------------------------------------------------------
    # Tables and views
    # ------------------------------------------------------------------

    def table_options(self, table: Table) -> str:
        return ""

    def primary_key_clause(self, table: Table, column_names: Sequence[str]) -> str:
        name = self.naming.primary_key_name(table, column_names)
        return f"CONSTRAINT {self.escape(name)} PRIMARY KEY ({self.escape_columns(column_names)})"

    def table_comment_statements(self, table: Table) -> list[str]:
        return []

    def drop_table_sql(self, target: Table | str, if_exist: bool = False) -> str:
        return f"DROP TABLE {'IF EXISTS ' if if_exist else ''}{self.escape_path(target)}"

    def rename_table_sql(self, old_name: str, new_name: str) -> Steps:
        """Statements renaming a table, and their inverses."""
        up = f"ALTER TABLE {self.escape_path(old_name)} RENAME TO {self.escape(self.table_name_only(new_name))}"
        down = f"ALTER TABLE {self.escape_path(new_name)} RENAME TO {self.escape(self.table_name_only(old_name))}"
        return Steps().add(up, down)

    def create_table_prelude(self, table: Table) -> Steps:
        """Objects that must exist before CREATE TABLE runs."""
        return Steps()

    def rename_table_extras(self, old: Table, new: Table) -> Steps:
        """Renames of dialect objects that embed the table name."""
        return Steps()

    def create_view_sql(self, view: View) -> str:
        materialized = "MATERIALIZED " if view.materialized else ""
        return f"CREATE {materialized}VIEW {self.escape_path(view)} AS {view.expression}"

    def drop_view_sql(self, view: View) -> str:
        materialized = "MATERIALIZED " if view.materialized else ""
        return f"DROP {materialized}VIEW {self.escape_path(view)}"

    def clear_table_sql(self, name: str) -> str:
        return f"TRUNCATE TABLE {self.escape_path(name)}"

    def drop_table_for_clear_sql(self, name: str) -> str:
        """DROP TABLE used while clearing a whole database."""
        return self.drop_table_sql(name, if_exist=True)

    def foreign_key_checks_sql(self, enabled: bool) -> str | None:
        """Statement toggling foreign key enforcement, if the dialect has one."""
        return None

    def table_rebuild_guard(self) -> tuple[list[str], list[str]]:
        """Statements run before and after a table rebuild."""
        return [], []

    def drop_enum_type_for_clear_sql(self, name: str) -> str:
        raise UnsupportedOperation(f"{self.name} has no enum types")

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_column_sql(self, table: Table, column: Column, skip_primary: bool) -> str:
        definition = self.column_sql(table, column, skip_primary=skip_primary)
        return f"ALTER TABLE {self.escape_path(table)} ADD {definition}"

    def drop_column_sql(self, table: Table, column: Column) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP COLUMN {self.escape(column.name)}"

    def add_column_steps(self, table: Table, column: Column, skip_primary: bool) -> Steps:
        """Add a column, including objects the column type depends on."""
        return Steps().add(
            self.add_column_sql(table, column, skip_primary),
            self.drop_column_sql(table, column),
        )

    def drop_column_steps(self, table: Table, column: Column) -> Steps:
        """Drop a column, including objects only the column depended on."""
        return Steps().add(
            self.drop_column_sql(table, column),
            self.add_column_sql(table, column, skip_primary=True),
        )

    def rename_column_sql(self, table: Table, old: Column, new: Column) -> str:
        return (
            f"ALTER TABLE {self.escape_path(table)} RENAME COLUMN "
            f"{self.escape(old.name)} TO {self.escape(new.name)}"
        )

    def rename_column_extras(self, table: Table, old: Column, new: Column) -> Steps:
        """Renames of dialect objects that embed the column name."""
        return Steps()

    def alter_column_sql(self, table: Table, old: Column, new: Column) -> Steps:
        """In-place changes of nullability, default, precision and comment.

        ``old`` and ``new`` already carry the same name.
        """
        raise UnsupportedOperation(f"{self.name} cannot alter columns in place")

    def set_identity_sql(self, table: Table, column: Column, enabled: bool) -> str:
        """Turn auto increment on or off for an existing column."""
        raise UnsupportedOperation(
            f"{self.name} cannot change identity of an existing column"
        )

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def create_index_sql(self, table: Table, index: Index) -> str:
        unique = "UNIQUE " if index.is_unique else ""
        where = f" WHERE {index.where}" if index.where else ""
        return (
            f"CREATE {unique}INDEX {self.escape(index.name or '')} ON "
            f"{self.escape_path(table)} ({self.escape_columns(index.column_names)}){where}"
        )

    def drop_index_sql(self, table: Table, index: Index) -> str:
        return f"DROP INDEX {self.escape(index.name or '')}"

    def rename_index_sql(self, table: Table, old: Index, new: Index) -> list[str]:
        return [self.drop_index_sql(table, old), self.create_index_sql(table, new)]

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def create_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> str:
        return f"ALTER TABLE {self.escape_path(table)} ADD {self.primary_key_clause(table, column_names)}"

    def drop_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> str:
        name = self.naming.primary_key_name(table, column_names)
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(name)}"

    def rename_constraint_sql(self, table: Table, old_name: str, new_name: str) -> str:
        return (
            f"ALTER TABLE {self.escape_path(table)} RENAME CONSTRAINT "
            f"{self.escape(old_name)} TO {self.escape(new_name)}"
        )

    def unique_clause(self, unique: UniqueConstraint) -> str:
        return f"CONSTRAINT {self.escape(unique.name or '')} UNIQUE ({self.escape_columns(unique.column_names)})"

    def create_unique_sql(self, table: Table, unique: UniqueConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} ADD {self.unique_clause(unique)}"

    def drop_unique_sql(self, table: Table, unique: UniqueConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(unique.name or '')}"

    def check_clause(self, check: CheckConstraint) -> str:
        return f"CONSTRAINT {self.escape(check.name or '')} CHECK ({check.expression})"

    def create_check_sql(self, table: Table, check: CheckConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} ADD {self.check_clause(check)}"

    def drop_check_sql(self, table: Table, check: CheckConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(check.name or '')}"

    def exclusion_clause(self, exclusion: ExclusionConstraint) -> str:
        return f"CONSTRAINT {self.escape(exclusion.name or '')} EXCLUDE {exclusion.expression}"

    def create_exclusion_sql(self, table: Table, exclusion: ExclusionConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} ADD {self.exclusion_clause(exclusion)}"

    def drop_exclusion_sql(self, table: Table, exclusion: ExclusionConstraint) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(exclusion.name or '')}"

    def foreign_key_clause(self, foreign_key: ForeignKey) -> str:
        sql = (
            f"CONSTRAINT {self.escape(foreign_key.name or '')} FOREIGN KEY "
            f"({self.escape_columns(foreign_key.column_names)}) REFERENCES "
            f"{self.escape_path(foreign_key.referenced_table_name)} "
            f"({self.escape_columns(foreign_key.referenced_column_names)})"
        )
        if foreign_key.on_delete:
            sql += f" ON DELETE {foreign_key.on_delete}"
        if foreign_key.on_update:
            sql += f" ON UPDATE {foreign_key.on_update}"
        if foreign_key.deferrable:
            sql += f" DEFERRABLE {foreign_key.deferrable}"
        return sql

    def create_foreign_key_sql(self, table: Table, foreign_key: ForeignKey) -> str:
        return f"ALTER TABLE {self.escape_path(table)} ADD {self.foreign_key_clause(foreign_key)}"

    def drop_foreign_key_sql(self, table: Table, foreign_key: ForeignKey) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(foreign_key.name or '')}"

    def rename_foreign_key_sql(
        self, table: Table, old: ForeignKey, new: ForeignKey
    ) -> list[str]:
        return [self.rename_constraint_sql(table, old.name or "", new.name or "")]

    # ------------------------------------------------------------------
    # Databases and schemas
    # ------------------------------------------------------------------

    def create_database_sql(self, name: str, if_not_exist: bool) -> str:
        raise UnsupportedOperation(f"{self.name} does not support database creation")

    def drop_database_sql(self, name: str, if_exist: bool) -> str:
        raise UnsupportedOperation(f"{self.name} does not support database drop")

    def create_schema_sql(self, path: str, if_not_exist: bool) -> str:
        raise UnsupportedOperation(f"{self.name} does not support schema creation")

    def drop_schema_sql(self, path: str, if_exist: bool, is_cascade: bool) -> str:
        raise UnsupportedOperation(f"{self.name} does not support schema drop")

    def use_database_sql(self, name: str) -> str:
        raise UnsupportedOperation(f"{self.name} cannot switch databases")

    def current_database_sql(self) -> str:
        raise UnsupportedOperation(f"{self.name} has no current database")

    def current_schema_sql(self) -> str:
        raise UnsupportedOperation(f"{self.name} has no current schema")
