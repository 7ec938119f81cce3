"""PostgreSQL dialect."""

from schemaforge.dialects.base import Dialect, QueryResult
from schemaforge.interfaces.driver import DriverResult
from schemaforge.schema import Column, Index, Table
from schemaforge.statements import Steps

_SERIAL_TYPES = {
    "integer": "SERIAL",
    "int": "SERIAL",
    "int4": "SERIAL",
    "smallint": "SMALLSERIAL",
    "int2": "SMALLSERIAL",
    "bigint": "BIGSERIAL",
    "int8": "BIGSERIAL",
}


class PostgresDialect(Dialect):
    """PostgreSQL: schemas, enum types, serial sequences, exclusion constraints."""

    name = "postgres"
    aliases = ("postgresql", "pg")
    max_alias_length = 63

    supports_exclusion_constraint = True
    supports_schemas = True
    supports_databases = True
    enum_strategy = "type"
    uuid_generator = "uuid_generate_v4()"

    # ------------------------------------------------------------------
    # Enum types and sequences
    # ------------------------------------------------------------------

    def enum_type_name(
        self,
        table: Table,
        column: Column,
        with_schema: bool = True,
        escape: bool = True,
        to_old: bool = False,
    ) -> str:
        """Name of the enum type backing ``column``.

        Args:
            table: Owning table
            column: Enum column
            with_schema: Prefix the table schema
            escape: Quote each segment
            to_old: Name of the temporary ``_old`` copy used while retyping

        Returns:
            Enum type name
        """
        table_name = self.table_name_only(table)
        name = column.enum_name or f"{table_name}_{column.name.lower()}_enum"
        segments = self.split_path(table)
        if with_schema and len(segments) > 1:
            name = f"{segments[-2]}.{name}"
        if to_old:
            name += "_old"
        if not escape:
            return name
        return ".".join(self.escape(segment) for segment in name.split("."))

    def create_enum_type_sql(
        self, table: Table, column: Column, enum_name: str | None = None
    ) -> str:
        values = ", ".join(self.literal(value) for value in column.enum or ())
        name = enum_name or self.enum_type_name(table, column)
        return f"CREATE TYPE {name} AS ENUM({values})"

    def drop_enum_type_sql(
        self, table: Table, column: Column, enum_name: str | None = None
    ) -> str:
        return f"DROP TYPE {enum_name or self.enum_type_name(table, column)}"

    def _owns_enum_type(self, table: Table, column: Column) -> bool:
        # A type is created and dropped by the first column in the table using it
        name = self.enum_type_name(table, column)
        return not any(
            other.is_enum
            and other.name != column.name
            and self.enum_type_name(table, other) == name
            for other in table.columns
        )

    def sequence_name(
        self, table: Table | str, column_name: str, escape: bool = True
    ) -> str:
        name = f"{self.table_name_only(table)}_{column_name}_seq"
        return self.escape(name) if escape else name

    def _sequence_path(self, table: Table | str, column_name: str) -> str:
        segments = self.split_path(table)
        sequence = self.sequence_name(table, column_name)
        if len(segments) > 1:
            return f"{self.escape(segments[-2])}.{sequence}"
        return sequence

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def full_type(self, column: Column) -> str:
        if column.type in ("geometry", "geography") and column.spatial_feature_type:
            srid = f",{column.srid}" if column.srid is not None else ""
            return f"{column.type}({column.spatial_feature_type}{srid})"
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
        if column.is_increment and not skip_identity:
            parts.append(_SERIAL_TYPES.get(column.type.lower(), "SERIAL"))
        elif column.is_enum:
            suffix = "[]" if column.is_array else ""
            parts.append(self.enum_type_name(table, column) + suffix)
        else:
            parts.append(self.full_type(column))
        if column.charset:
            parts.append(f'CHARACTER SET "{column.charset}"')
        if column.collation:
            parts.append(f'COLLATE "{column.collation}"')
        if column.as_expression:
            parts.append(f"GENERATED ALWAYS AS ({column.as_expression}) STORED")
        if not column.is_nullable:
            parts.append("NOT NULL")
        if emit_default and not column.as_expression:
            if column.default is not None:
                parts.append(f"DEFAULT {column.default}")
            elif column.generation_strategy.value == "uuid":
                parts.append(f"DEFAULT {self.uuid_generator}")
        return " ".join(parts)

    def add_column_steps(self, table: Table, column: Column, skip_primary: bool) -> Steps:
        steps = Steps()
        if column.is_enum and self._owns_enum_type(table, column):
            steps.add(
                self.create_enum_type_sql(table, column),
                self.drop_enum_type_sql(table, column),
            )
        return steps.extend(super().add_column_steps(table, column, skip_primary))

    def drop_column_steps(self, table: Table, column: Column) -> Steps:
        steps = super().drop_column_steps(table, column)
        if column.is_enum and self._owns_enum_type(table, column):
            steps.add(
                self.drop_enum_type_sql(table, column),
                self.create_enum_type_sql(table, column),
            )
        return steps

    def rename_column_extras(self, table: Table, old: Column, new: Column) -> Steps:
        steps = Steps()
        if old.is_enum and not old.enum_name:
            old_type = self.enum_type_name(table, old)
            new_type = self.enum_type_name(table, new)
            if old_type != new_type:
                steps.add(
                    f"ALTER TYPE {old_type} RENAME TO {self.enum_type_name(table, new, with_schema=False)}",
                    f"ALTER TYPE {new_type} RENAME TO {self.enum_type_name(table, old, with_schema=False)}",
                )
        if old.is_increment:
            steps.add(
                f"ALTER SEQUENCE {self._sequence_path(table, old.name)} "
                f"RENAME TO {self.sequence_name(table, new.name)}",
                f"ALTER SEQUENCE {self._sequence_path(table, new.name)} "
                f"RENAME TO {self.sequence_name(table, old.name)}",
            )
        return steps

    def alter_column_sql(self, table: Table, old: Column, new: Column) -> Steps:
        path = self.escape_path(table)
        column = self.escape(new.name)
        steps = Steps()

        if old.precision != new.precision or old.scale != new.scale:
            steps.add(
                f"ALTER TABLE {path} ALTER COLUMN {column} TYPE {self.full_type(new)}",
                f"ALTER TABLE {path} ALTER COLUMN {column} TYPE {self.full_type(old)}",
            )

        # Retyping an enum column handles its default; the generic default
        # step below is skipped in that case.
        default_handled = False
        if (
            old.is_enum
            and new.is_enum
            and (old.enum != new.enum or old.enum_name != new.enum_name)
        ):
            default_handled = True
            steps.extend(self._retype_enum_steps(table, old, new))

        if old.is_nullable != new.is_nullable:
            set_null = f"ALTER TABLE {path} ALTER COLUMN {column} DROP NOT NULL"
            set_not_null = f"ALTER TABLE {path} ALTER COLUMN {column} SET NOT NULL"
            if new.is_nullable:
                steps.add(set_null, set_not_null)
            else:
                steps.add(set_not_null, set_null)

        if old.comment != new.comment:
            steps.add(
                f"COMMENT ON COLUMN {path}.{column} IS {self.escape_comment(new.comment)}",
                f"COMMENT ON COLUMN {path}.{column} IS {self.escape_comment(old.comment)}",
            )

        if old.default != new.default and not default_handled:
            steps.add(
                self._default_sql(path, column, new.default),
                self._default_sql(path, column, old.default),
            )
        return steps

    def _default_sql(self, path: str, column: str, default: str | None) -> str:
        if default is None:
            return f"ALTER TABLE {path} ALTER COLUMN {column} DROP DEFAULT"
        return f"ALTER TABLE {path} ALTER COLUMN {column} SET DEFAULT {default}"

    def _retype_enum_steps(self, table: Table, old: Column, new: Column) -> Steps:
        path = self.escape_path(table)
        column = self.escape(new.name)
        suffix = "[]" if new.is_array else ""
        new_type = self.enum_type_name(table, new)
        old_type = self.enum_type_name(table, old)
        old_type_bare = self.enum_type_name(table, old, with_schema=False)
        old_copy = self.enum_type_name(table, old, to_old=True)
        old_copy_bare = self.enum_type_name(table, old, with_schema=False, to_old=True)

        steps = Steps()
        steps.add(
            f"ALTER TYPE {old_type} RENAME TO {old_copy_bare}",
            f"ALTER TYPE {old_copy} RENAME TO {old_type_bare}",
        )
        steps.add(
            self.create_enum_type_sql(table, new, new_type),
            self.drop_enum_type_sql(table, new, new_type),
        )
        if old.default is not None:
            steps.add(
                self._default_sql(path, column, None),
                self._default_sql(path, column, old.default),
            )
        steps.add(
            f"ALTER TABLE {path} ALTER COLUMN {column} TYPE {new_type}{suffix} "
            f'USING {column}::"text"::{new_type}{suffix}',
            f"ALTER TABLE {path} ALTER COLUMN {column} TYPE {old_copy}{suffix} "
            f'USING {column}::"text"::{old_copy}{suffix}',
        )
        if new.default is not None:
            steps.add(
                self._default_sql(path, column, new.default),
                self._default_sql(path, column, None),
            )
        steps.add(
            self.drop_enum_type_sql(table, old, old_copy),
            self.create_enum_type_sql(table, old, old_copy),
        )
        return steps

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def create_table_prelude(self, table: Table) -> Steps:
        steps = Steps()
        created: set[str] = set()
        for column in table.columns:
            if not column.is_enum:
                continue
            name = self.enum_type_name(table, column)
            if name in created:
                continue
            created.add(name)
            steps.add(
                self.create_enum_type_sql(table, column, name),
                self.drop_enum_type_sql(table, column, name),
            )
        return steps

    def drop_table_for_clear_sql(self, name: str) -> str:
        return f"{self.drop_table_sql(name, if_exist=True)} CASCADE"

    def drop_enum_type_for_clear_sql(self, name: str) -> str:
        return f"DROP TYPE IF EXISTS {self.escape_path(name)} CASCADE"

    def table_comment_statements(self, table: Table) -> list[str]:
        path = self.escape_path(table)
        return [
            f"COMMENT ON COLUMN {path}.{self.escape(column.name)} IS {self.escape_comment(column.comment)}"
            for column in table.columns
            if column.comment
        ]

    def rename_table_extras(self, old: Table, new: Table) -> Steps:
        steps = Steps()
        for column in old.columns:
            if column.is_increment:
                steps.add(
                    f"ALTER SEQUENCE {self._sequence_path(old, column.name)} "
                    f"RENAME TO {self.sequence_name(new, column.name)}",
                    f"ALTER SEQUENCE {self._sequence_path(new, column.name)} "
                    f"RENAME TO {self.sequence_name(old, column.name)}",
                )
            if column.is_enum and not column.enum_name:
                steps.add(
                    f"ALTER TYPE {self.enum_type_name(old, column)} RENAME TO "
                    f"{self.enum_type_name(new, column, with_schema=False)}",
                    f"ALTER TYPE {self.enum_type_name(new, column)} RENAME TO "
                    f"{self.enum_type_name(old, column, with_schema=False)}",
                )
        return steps

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def create_index_sql(self, table: Table, index: Index) -> str:
        unique = "UNIQUE " if index.is_unique else ""
        using = "USING GiST " if index.is_spatial else ""
        where = f" WHERE {index.where}" if index.where else ""
        return (
            f"CREATE {unique}INDEX {self.escape(index.name or '')} ON "
            f"{self.escape_path(table)} {using}({self.escape_columns(index.column_names)}){where}"
        )

    def _index_path(self, table: Table, name: str) -> str:
        segments = self.split_path(table)
        if len(segments) > 1:
            return f"{self.escape(segments[-2])}.{self.escape(name)}"
        return self.escape(name)

    def drop_index_sql(self, table: Table, index: Index) -> str:
        return f"DROP INDEX {self._index_path(table, index.name or '')}"

    def rename_index_sql(self, table: Table, old: Index, new: Index) -> list[str]:
        return [
            f"ALTER INDEX {self._index_path(table, old.name or '')} "
            f"RENAME TO {self.escape(new.name or '')}"
        ]

    # ------------------------------------------------------------------
    # Results, databases and schemas
    # ------------------------------------------------------------------

    def normalize_result(self, sql: str, result: DriverResult) -> QueryResult:
        rows = result.rows if result.rows is not None else []
        if self.statement_kind(sql) in ("UPDATE", "DELETE"):
            raw = [rows, result.rowcount]
        else:
            raw = rows
        return QueryResult(raw=raw, records=rows, affected=result.rowcount)

    def create_database_sql(self, name: str, if_not_exist: bool) -> str:
        return f"CREATE DATABASE {self.escape(name)}"

    def drop_database_sql(self, name: str, if_exist: bool) -> str:
        return f"DROP DATABASE {'IF EXISTS ' if if_exist else ''}{self.escape(name)}"

    def create_schema_sql(self, path: str, if_not_exist: bool) -> str:
        schema = path.split(".")[-1]
        return f"CREATE SCHEMA {'IF NOT EXISTS ' if if_not_exist else ''}{self.escape(schema)}"

    def drop_schema_sql(self, path: str, if_exist: bool, is_cascade: bool) -> str:
        schema = path.split(".")[-1]
        cascade = " CASCADE" if is_cascade else ""
        return f"DROP SCHEMA {'IF EXISTS ' if if_exist else ''}{self.escape(schema)}{cascade}"

    def current_database_sql(self) -> str:
        return "SELECT current_database() AS \"current_database\""

    def current_schema_sql(self) -> str:
        return "SELECT current_schema() AS \"current_schema\""

