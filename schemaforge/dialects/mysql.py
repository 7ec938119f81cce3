"""MySQL and MariaDB dialect."""

from collections.abc import Sequence

from schemaforge.dialects.base import Dialect, QueryResult
from schemaforge.errors import UnsupportedOperation
from schemaforge.interfaces.driver import DriverResult
from schemaforge.schema import Column, ForeignKey, Index, Table, UniqueConstraint
from schemaforge.statements import Steps
from schemaforge.types import GenerationStrategy, IsolationLevel


class MySQLDialect(Dialect):
    """MySQL: backtick quoting, unique indices instead of unique constraints.

    Auto increment columns must be part of a key, and a primary key is never
    named, so primary key changes go through ``DROP PRIMARY KEY`` /
    ``ADD PRIMARY KEY`` with the increment attribute stripped around them.
    """

    name = "mysql"
    aliases = ("mariadb",)
    quote_open = "`"
    quote_close = "`"
    max_alias_length = 63

    supports_unique_constraint = False
    supports_check_constraint = False
    supports_identity_columns = True
    identity_requires_primary_key = True
    supports_databases = True
    supports_transactional_ddl = False
    names_primary_key = False
    inline_primary_key_on_add = True
    inline_indices = True
    enum_strategy = "inline"

    def full_type(self, column: Column) -> str:
        if column.is_enum:
            values = ",".join(self.literal(value) for value in column.enum or ())
            return f"enum({values})"
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
        if column.as_expression:
            parts.append(
                f"AS ({column.as_expression}) {column.generated_type or 'VIRTUAL'}"
            )
        if column.charset:
            parts.append(f'CHARACTER SET "{column.charset}"')
        if column.collation:
            parts.append(f'COLLATE "{column.collation}"')
        parts.append("NULL" if column.is_nullable else "NOT NULL")
        if column.is_primary and not skip_primary:
            parts.append("PRIMARY KEY")
        if column.is_increment and not skip_identity:
            parts.append("AUTO_INCREMENT")
        if column.comment:
            parts.append(f"COMMENT {self.literal(column.comment)}")
        if emit_default and column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        return " ".join(parts)

    def has_column_changed(self, old: Column, new: Column) -> bool:
        return super().has_column_changed(old, new) or old.generated_type != new.generated_type

    def rename_column_sql(self, table: Table, old: Column, new: Column) -> str:
        # CHANGE redefines the column, so the full definition is repeated
        return (
            f"ALTER TABLE {self.escape_path(table)} CHANGE {self.escape(old.name)} "
            f"{self.escape(new.name)} {self.column_sql(table, old, skip_name=True)}"
        )

    def alter_column_sql(self, table: Table, old: Column, new: Column) -> Steps:
        path = self.escape_path(table)
        return Steps().add(
            f"ALTER TABLE {path} CHANGE {self.escape(old.name)} {self.column_sql(table, new)}",
            f"ALTER TABLE {path} CHANGE {self.escape(new.name)} {self.column_sql(table, old)}",
        )

    def set_identity_sql(self, table: Table, column: Column, enabled: bool) -> str:
        if enabled:
            target = column.evolve(generation_strategy=GenerationStrategy.INCREMENT)
        else:
            target = column.without_identity()
        return (
            f"ALTER TABLE {self.escape_path(table)} CHANGE {self.escape(column.name)} "
            f"{self.column_sql(table, target)}"
        )

    # ------------------------------------------------------------------
    # Transactions and results
    # ------------------------------------------------------------------

    def begin_statements(self, isolation_level: IsolationLevel | None) -> list[str]:
        statements = []
        if isolation_level:
            statements.append(
                f"SET TRANSACTION ISOLATION LEVEL {IsolationLevel(isolation_level).value}"
            )
        statements.append("START TRANSACTION")
        return statements

    def normalize_result(self, sql: str, result: DriverResult) -> QueryResult:
        if result.rows is not None:
            raw = result.rows
        else:
            raw = {"affectedRows": result.rowcount, "insertId": result.lastrowid}
        return QueryResult(raw=raw, records=result.rows, affected=result.rowcount)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def table_options(self, table: Table) -> str:
        return f" ENGINE={table.engine or 'InnoDB'}"

    def primary_key_clause(self, table: Table, column_names: Sequence[str]) -> str:
        return f"PRIMARY KEY ({self.escape_columns(column_names)})"

    def foreign_key_checks_sql(self, enabled: bool) -> str | None:
        return f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}"

    def rename_table_sql(self, old_name: str, new_name: str) -> Steps:
        return Steps().add(
            f"RENAME TABLE {self.escape_path(old_name)} TO {self.escape_path(new_name)}",
            f"RENAME TABLE {self.escape_path(new_name)} TO {self.escape_path(old_name)}",
        )

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def _index_kind(self, index: Index) -> str:
        if index.is_unique:
            return "UNIQUE "
        if index.is_spatial:
            return "SPATIAL "
        if index.is_fulltext:
            return "FULLTEXT "
        return ""

    def index_clause(self, index: Index) -> str:
        """Index declaration as it appears inside CREATE TABLE."""
        parser = f" WITH PARSER {index.parser}" if index.parser else ""
        return (
            f"{self._index_kind(index)}INDEX {self.escape(index.name or '')} "
            f"({self.escape_columns(index.column_names)}){parser}"
        )

    def create_index_sql(self, table: Table, index: Index) -> str:
        parser = f" WITH PARSER {index.parser}" if index.parser else ""
        return (
            f"CREATE {self._index_kind(index)}INDEX {self.escape(index.name or '')} ON "
            f"{self.escape_path(table)} ({self.escape_columns(index.column_names)}){parser}"
        )

    def drop_index_sql(self, table: Table, index: Index) -> str:
        return f"DROP INDEX {self.escape(index.name or '')} ON {self.escape_path(table)}"

    def rename_index_sql(self, table: Table, old: Index, new: Index) -> list[str]:
        return [
            f"ALTER TABLE {self.escape_path(table)} DROP INDEX {self.escape(old.name or '')}, "
            f"ADD {self.index_clause(new)}"
        ]

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def drop_primary_key_sql(self, table: Table, column_names: Sequence[str]) -> str:
        return f"ALTER TABLE {self.escape_path(table)} DROP PRIMARY KEY"

    def rename_constraint_sql(self, table: Table, old_name: str, new_name: str) -> str:
        raise UnsupportedOperation("mysql cannot rename constraints")

    def unique_clause(self, unique: UniqueConstraint) -> str:
        return f"UNIQUE INDEX {self.escape(unique.name or '')} ({self.escape_columns(unique.column_names)})"

    def drop_foreign_key_sql(self, table: Table, foreign_key: ForeignKey) -> str:
        return (
            f"ALTER TABLE {self.escape_path(table)} DROP FOREIGN KEY "
            f"{self.escape(foreign_key.name or '')}"
        )

    def rename_foreign_key_sql(
        self, table: Table, old: ForeignKey, new: ForeignKey
    ) -> list[str]:
        return [
            f"ALTER TABLE {self.escape_path(table)} DROP FOREIGN KEY "
            f"{self.escape(old.name or '')}, ADD {self.foreign_key_clause(new)}"
        ]

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def create_database_sql(self, name: str, if_not_exist: bool) -> str:
        return f"CREATE DATABASE {'IF NOT EXISTS ' if if_not_exist else ''}{self.escape(name)}"

    def drop_database_sql(self, name: str, if_exist: bool) -> str:
        return f"DROP DATABASE {'IF EXISTS ' if if_exist else ''}{self.escape(name)}"

    def use_database_sql(self, name: str) -> str:
        return f"USE {self.escape(name)}"

    def current_database_sql(self) -> str:
        return "SELECT DATABASE() AS `db_name`"
