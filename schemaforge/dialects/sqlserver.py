"""Microsoft SQL Server dialect."""

from schemaforge.dialects.base import Dialect, QueryResult
from schemaforge.interfaces.driver import DriverResult
from schemaforge.schema import Column, ForeignKey, Index, Table
from schemaforge.statements import Steps
from schemaforge.types import IsolationLevel


class SQLServerDialect(Dialect):
    """SQL Server: sp_rename, named default constraints, IDENTITY columns.

    The connection protocol does not allow interleaved statements, so every
    query goes through the session admission queue.
    """

    name = "mssql"
    aliases = ("sqlserver",)
    max_alias_length = 128

    supports_identity_columns = True
    requires_db_switch_for_cross_db_rename = True
    requires_query_ordering = True
    supports_schemas = True
    supports_databases = True
    uses_default_constraints = True
    drops_foreign_keys_before_clear = True
    enum_strategy = "check"
    uuid_generator = "NEWSEQUENTIALID()"

    def _bare_path(self, table: Table | str) -> str:
        return ".".join(self.split_path(table))

    def full_type(self, column: Column) -> str:
        if column.is_enum:
            return f"nvarchar({column.length or 255})"
        return super().full_type(column)

    def enum_check_clause(self, table: Table, column: Column) -> str:
        values = ",".join(self.literal(value) for value in column.enum or ())
        expression = f"{self.escape(column.name)} IN ({values})"
        name = self.naming.check_constraint_name(table, expression, is_enum=True)
        return f"CONSTRAINT {self.escape(name)} CHECK({expression})"

    def requires_column_recreate(self, old: Column, new: Column) -> bool:
        # The enum check is part of the column definition
        return super().requires_column_recreate(old, new) or old.enum != new.enum

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
        if column.as_expression:
            parts.append(f"AS ({column.as_expression})")
            if column.generated_type == "STORED":
                parts.append("PERSISTED")
                if not column.is_nullable:
                    parts.append("NOT NULL")
            return " ".join(parts)

        parts.append(self.full_type(column))
        if column.is_enum:
            parts.append(self.enum_check_clause(table, column))
        if column.collation:
            parts.append(f"COLLATE {column.collation}")
        parts.append("NULL" if column.is_nullable else "NOT NULL")
        if column.is_increment and not skip_identity:
            parts.append("IDENTITY(1,1)")
        if emit_default:
            default = column.default
            if default is None and column.generation_strategy.value == "uuid":
                default = self.uuid_generator
            if default is not None:
                name = self.naming.default_constraint_name(table, column.name)
                parts.append(f"CONSTRAINT {self.escape(name)} DEFAULT {default}")
        return " ".join(parts)

    def _alter_fragment(self, column: Column) -> str:
        # ALTER COLUMN takes the bare type; enum checks and defaults stay put
        sql = f"{self.escape(column.name)} {self.full_type(column)}"
        if column.collation:
            sql += f" COLLATE {column.collation}"
        return sql + (" NULL" if column.is_nullable else " NOT NULL")

    def _add_default_sql(self, table: Table, column: Column) -> str:
        name = self.naming.default_constraint_name(table, column.name)
        return (
            f"ALTER TABLE {self.escape_path(table)} ADD CONSTRAINT {self.escape(name)} "
            f"DEFAULT {column.default} FOR {self.escape(column.name)}"
        )

    def _drop_default_sql(self, table: Table, column: Column) -> str:
        name = self.naming.default_constraint_name(table, column.name)
        return f"ALTER TABLE {self.escape_path(table)} DROP CONSTRAINT {self.escape(name)}"

    def drop_column_steps(self, table: Table, column: Column) -> Steps:
        steps = Steps()
        if column.default is not None:
            steps.add(
                self._drop_default_sql(table, column),
                self._add_default_sql(table, column),
            )
        path = self.escape_path(table)
        restored = self.column_sql(table, column, emit_default=False)
        return steps.add(
            self.drop_column_sql(table, column),
            f"ALTER TABLE {path} ADD {restored}",
        )

    def rename_column_sql(self, table: Table, old: Column, new: Column) -> str:
        return f'EXEC sp_rename "{self._bare_path(table)}.{old.name}", "{new.name}"'

    def rename_column_extras(self, table: Table, old: Column, new: Column) -> Steps:
        steps = Steps()
        if old.default is None:
            return steps
        old_name = self.naming.default_constraint_name(table, old.name)
        new_name = self.naming.default_constraint_name(table, new.name)
        if old_name != new_name:
            path = self._bare_path(table)
            steps.add(
                f'EXEC sp_rename "{path}.{old_name}", "{new_name}"',
                f'EXEC sp_rename "{path}.{new_name}", "{old_name}"',
            )
        return steps

    def alter_column_sql(self, table: Table, old: Column, new: Column) -> Steps:
        path = self.escape_path(table)
        steps = Steps()
        if (
            old.is_nullable != new.is_nullable
            or old.precision != new.precision
            or old.scale != new.scale
            or old.collation != new.collation
        ):
            steps.add(
                f"ALTER TABLE {path} ALTER COLUMN {self._alter_fragment(new)}",
                f"ALTER TABLE {path} ALTER COLUMN {self._alter_fragment(old)}",
            )
        if old.default != new.default:
            if old.default is not None:
                steps.add(
                    self._drop_default_sql(table, old),
                    self._add_default_sql(table, old),
                )
            if new.default is not None:
                steps.add(
                    self._add_default_sql(table, new),
                    self._drop_default_sql(table, new),
                )
        return steps

    # ------------------------------------------------------------------
    # Transactions and results
    # ------------------------------------------------------------------

    def begin_statements(self, isolation_level: IsolationLevel | None) -> list[str]:
        statements = []
        if isolation_level:
            statements.append(
                f"SET TRANSACTION ISOLATION LEVEL {IsolationLevel(isolation_level).value}"
            )
        statements.append("BEGIN TRANSACTION")
        return statements

    def normalize_result(self, sql: str, result: DriverResult) -> QueryResult:
        rows = result.rows if result.rows is not None else []
        if self.statement_kind(sql) == "DELETE":
            raw = [rows, result.rowcount]
        else:
            raw = rows
        return QueryResult(raw=raw, records=rows, affected=result.rowcount)

    # ------------------------------------------------------------------
    # Tables and renames
    # ------------------------------------------------------------------

    def rename_table_sql(self, old_name: str, new_name: str) -> Steps:
        return Steps().add(
            f'EXEC sp_rename "{self._bare_path(old_name)}", "{self.table_name_only(new_name)}"',
            f'EXEC sp_rename "{self._bare_path(new_name)}", "{self.table_name_only(old_name)}"',
        )

    def rename_table_extras(self, old: Table, new: Table) -> Steps:
        steps = Steps()
        for column in new.columns:
            if column.default is None:
                continue
            steps.add(
                [
                    f"ALTER TABLE {self.escape_path(new)} DROP CONSTRAINT "
                    f"{self.escape(self.naming.default_constraint_name(old, column.name))}",
                    self._add_default_sql(new, column),
                ],
                [
                    self._drop_default_sql(new, column),
                    f"ALTER TABLE {self.escape_path(new)} ADD CONSTRAINT "
                    f"{self.escape(self.naming.default_constraint_name(old, column.name))} "
                    f"DEFAULT {column.default} FOR {self.escape(column.name)}",
                ],
            )
        return steps

    def rename_constraint_sql(self, table: Table, old_name: str, new_name: str) -> str:
        return f'EXEC sp_rename "{self._bare_path(table)}.{old_name}", "{new_name}"'

    def rename_foreign_key_sql(
        self, table: Table, old: ForeignKey, new: ForeignKey
    ) -> list[str]:
        segments = self.split_path(table)[:-1]
        path = ".".join(segments + [old.name or ""])
        return [f'EXEC sp_rename "{path}", "{new.name}"']

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
        return f"DROP INDEX {self.escape(index.name or '')} ON {self.escape_path(table)}"

    def rename_index_sql(self, table: Table, old: Index, new: Index) -> list[str]:
        return [
            f'EXEC sp_rename "{self._bare_path(table)}.{old.name}", "{new.name}", "INDEX"'
        ]

    # ------------------------------------------------------------------
    # Databases and schemas
    # ------------------------------------------------------------------

    def create_database_sql(self, name: str, if_not_exist: bool) -> str:
        if if_not_exist:
            return f"IF DB_ID('{name}') IS NULL CREATE DATABASE {self.escape(name)}"
        return f"CREATE DATABASE {self.escape(name)}"

    def drop_database_sql(self, name: str, if_exist: bool) -> str:
        if if_exist:
            return f"IF DB_ID('{name}') IS NOT NULL DROP DATABASE {self.escape(name)}"
        return f"DROP DATABASE {self.escape(name)}"

    def create_schema_sql(self, path: str, if_not_exist: bool) -> str:
        schema = path.split(".")[-1]
        if if_not_exist:
            return (
                f"IF SCHEMA_ID('{schema}') IS NULL "
                f"BEGIN EXEC ('CREATE SCHEMA {self.escape(schema)}') END"
            )
        return f"CREATE SCHEMA {self.escape(schema)}"

    def drop_schema_sql(self, path: str, if_exist: bool, is_cascade: bool) -> str:
        schema = path.split(".")[-1]
        if if_exist:
            return (
                f"IF SCHEMA_ID('{schema}') IS NOT NULL "
                f"BEGIN EXEC ('DROP SCHEMA {self.escape(schema)}') END"
            )
        return f"DROP SCHEMA {self.escape(schema)}"

    def use_database_sql(self, name: str) -> str:
        return f"USE {self.escape(name)}"

    def current_database_sql(self) -> str:
        return 'SELECT DB_NAME() AS "db_name"'

    def current_schema_sql(self) -> str:
        return 'SELECT SCHEMA_NAME() AS "schema_name"'
