"""SQLite dialect."""

from collections.abc import Sequence

from schemaforge.dialects.base import Dialect, QueryResult
from schemaforge.errors import UnsupportedOperation
from schemaforge.interfaces.driver import DriverResult
from schemaforge.schema import Column, Index, Table
from schemaforge.types import IsolationLevel


class SQLiteDialect(Dialect):
    """SQLite: constraint changes are applied by rebuilding the table.

    ALTER TABLE only renames tables and columns or adds plain columns, so the
    migration executor recreates the table for everything else. The Python
    ``sqlite3`` module shares one connection between statements, which is why
    queries are admitted one at a time.
    """

    name = "sqlite"
    aliases = ("sqlite3",)

    requires_query_ordering = True
    recreates_table_on_alter = True
    names_primary_key = False
    inline_single_primary_key = True
    enum_strategy = "check"

    def full_type(self, column: Column) -> str:
        if column.is_enum:
            return "varchar"
        return super().full_type(column)

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
        parts = [] if skip_name else [self.escape(column.name)]
        parts.append(self.full_type(column))
        if column.is_enum:
            values = ",".join(self.literal(value) for value in column.enum or ())
            parts.append(f"CHECK( {self.escape(column.name)} IN ({values}) )")
        if column.is_primary and not skip_primary:
            parts.append("PRIMARY KEY")
            if column.is_increment and not skip_identity:
                parts.append("AUTOINCREMENT")
        if column.collation:
            parts.append(f"COLLATE {column.collation}")
        if column.as_expression:
            parts.append(
                f"AS ({column.as_expression}) {column.generated_type or 'VIRTUAL'}"
            )
        if not column.is_nullable:
            parts.append("NOT NULL")
        if emit_default and column.default is not None:
            parts.append(f"DEFAULT ({column.default})")
        return " ".join(parts)

    def begin_statements(self, isolation_level: IsolationLevel | None) -> list[str]:
        statements = []
        if isolation_level:
            level = IsolationLevel(isolation_level)
            if level not in (IsolationLevel.READ_UNCOMMITTED, IsolationLevel.SERIALIZABLE):
                raise UnsupportedOperation(
                    "SQLite only supports SERIALIZABLE and READ UNCOMMITTED isolation"
                )
            read_uncommitted = "true" if level == IsolationLevel.READ_UNCOMMITTED else "false"
            statements.append(f"PRAGMA read_uncommitted = {read_uncommitted}")
        statements.append("BEGIN TRANSACTION")
        return statements

    def table_rebuild_guard(self) -> tuple[list[str], list[str]]:
        # foreign_keys cannot change inside a transaction, deferral covers that case
        return (
            ["PRAGMA foreign_keys = OFF", "PRAGMA defer_foreign_keys = ON"],
            ["PRAGMA foreign_keys = ON"],
        )

    def normalize_result(self, sql: str, result: DriverResult) -> QueryResult:
        if self.statement_kind(sql) == "INSERT":
            raw = result.lastrowid
        else:
            raw = result.rows
        return QueryResult(raw=raw, records=result.rows, affected=result.rowcount)

    def primary_key_clause(self, table: Table, column_names: Sequence[str]) -> str:
        return f"PRIMARY KEY ({self.escape_columns(column_names)})"

    def create_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> str:
        raise UnsupportedOperation("sqlite changes primary keys by recreating the table")

    def drop_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> str:
        raise UnsupportedOperation("sqlite changes primary keys by recreating the table")

    def rename_constraint_sql(self, table: Table, old_name: str, new_name: str) -> str:
        raise UnsupportedOperation("sqlite renames constraints by recreating the table")

    def create_index_sql(self, table: Table, index: Index) -> str:
        unique = "UNIQUE " if index.is_unique else ""
        where = f" WHERE {index.where}" if index.where else ""
        return (
            f"CREATE {unique}INDEX {self.escape(index.name or '')} ON "
            f"{self.escape(self.table_name_only(table))} "
            f"({self.escape_columns(index.column_names)}){where}"
        )

    def drop_index_sql(self, table: Table, index: Index) -> str:
        prefix = self.path_prefix(table)
        name = self.escape(index.name or "")
        return f"DROP INDEX {self.escape(prefix)}.{name}" if prefix else f"DROP INDEX {name}"

    def clear_table_sql(self, name: str) -> str:
        return f"DELETE FROM {self.escape_path(name)}"
