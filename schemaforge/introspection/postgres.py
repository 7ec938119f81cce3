"""PostgreSQL catalog introspection."""

import re
from collections.abc import Sequence

from schemaforge.schema import (
    CheckConstraint,
    Column,
    ExclusionConstraint,
    ForeignKey,
    Index,
    Table,
    UniqueConstraint,
)
from schemaforge.types import GenerationStrategy, RowType

from .base import Introspector, group_rows, qualified_name, unique_in_order

# pg_constraint confdeltype / confupdtype codes; "a" (no action) maps to None
_ACTIONS = {"r": "RESTRICT", "c": "CASCADE", "n": "SET NULL", "d": "SET DEFAULT"}
_UUID_DEFAULTS = ("uuid_generate_v4()", "gen_random_uuid()")
_CAST_PATTERN = re.compile(r"^('(?:[^']|'')*')::[\w\s.\"]+(\[\])?$")
_SPATIAL_PATTERN = re.compile(r"^(geometry|geography)\((\w+)(?:,\s*(\d+))?\)$", re.IGNORECASE)
_DECIMAL_TYPES = ("numeric", "decimal")

TableKey = tuple[str, str]


def _strip_cast(default: str | None) -> str | None:
    if default is None:
        return None
    match = _CAST_PATTERN.match(default)
    return match.group(1) if match else default


def _check_expression(definition: str) -> str:
    # pg_get_constraintdef renders "CHECK ((expr))"
    body = definition.strip()
    if body.upper().startswith("CHECK "):
        body = body[len("CHECK "):].strip()
    if body.endswith(" NOT VALID"):
        body = body[: -len(" NOT VALID")]
    if body.startswith("(") and body.endswith(")"):
        body = body[1:-1]
    return body


def _exclusion_expression(definition: str) -> str:
    body = definition.strip()
    return body[len("EXCLUDE "):] if body.upper().startswith("EXCLUDE ") else body


def _deferrable(row: RowType) -> str | None:
    if not row.get("is_deferrable"):
        return None
    return "INITIALLY DEFERRED" if row.get("is_deferred") else "INITIALLY IMMEDIATE"


def build_postgres_tables(
    names: dict[TableKey, str],
    column_rows: Sequence[RowType],
    constraint_rows: Sequence[RowType],
    index_rows: Sequence[RowType],
    foreign_key_rows: Sequence[RowType],
    enum_rows: Sequence[RowType],
    current_schema: str,
) -> list[Table]:
    """Build table models from PostgreSQL catalog rows.

    Args:
        names: Requested table name keyed by ``(schema, table)``
        column_rows: ``information_schema.columns`` rows
        constraint_rows: Primary, unique, check and exclusion constraint rows
        index_rows: ``pg_index`` rows for indices not backing a constraint
        foreign_key_rows: Foreign key rows, one per column pair
        enum_rows: ``pg_enum`` labels with their type schema and name
        current_schema: Schema unqualified names resolve to

    Returns:
        Table models for the tables present in ``column_rows``
    """

    def key(row: RowType) -> TableKey:
        return (row["table_schema"], row["table_name"])

    columns_by_table = group_rows(column_rows, key)
    constraints_by_table = group_rows(constraint_rows, key)
    indices_by_table = group_rows(index_rows, key)
    keys_by_table = group_rows(foreign_key_rows, key)
    enum_values: dict[tuple[str, str], list[str]] = {}
    for row in sorted(enum_rows, key=lambda row: row["sort_order"]):
        enum_values.setdefault((row["type_schema"], row["type_name"]), []).append(row["value"])

    tables = []
    for table_key, table_name in names.items():
        if table_key not in columns_by_table:
            continue
        schema, bare_name = table_key

        constraints = group_rows(
            constraints_by_table.get(table_key, []), lambda row: row["constraint_name"]
        )
        primary_columns: set[str] = set()
        uniques = []
        checks = []
        exclusions = []
        for constraint_name, rows in constraints.items():
            kind = rows[0]["constraint_type"]
            column_names = tuple(unique_in_order(row["column_name"] for row in rows if row["column_name"]))
            if kind == "p":
                primary_columns.update(column_names)
            elif kind == "u":
                uniques.append(UniqueConstraint(column_names=column_names, name=constraint_name))
            elif kind == "c":
                checks.append(
                    CheckConstraint(
                        expression=_check_expression(rows[0]["definition"]),
                        name=constraint_name,
                        column_names=column_names,
                    )
                )
            elif kind == "x":
                exclusions.append(
                    ExclusionConstraint(
                        expression=_exclusion_expression(rows[0]["definition"]),
                        name=constraint_name,
                    )
                )
        single_uniques = {unique.column_names[0] for unique in uniques if len(unique.column_names) == 1}

        columns = []
        for row in sorted(columns_by_table[table_key], key=lambda row: row["ordinal_position"]):
            name = row["column_name"]
            data_type = row["data_type"]
            default = row["column_default"]
            generation = GenerationStrategy.NONE
            if row.get("is_identity") == "YES" or (default or "").startswith("nextval("):
                generation = GenerationStrategy.INCREMENT
                default = None
            elif default in _UUID_DEFAULTS:
                generation = GenerationStrategy.UUID
                default = None

            is_array = data_type == "ARRAY"
            udt_name = row["udt_name"]
            type_name = udt_name[1:] if is_array and udt_name.startswith("_") else data_type
            enum = None
            enum_name = None
            if data_type == "USER-DEFINED" or is_array:
                values = enum_values.get((row["udt_schema"], udt_name.lstrip("_")))
                if values is not None:
                    enum = tuple(values)
                    type_name = "enum"
                    type_label = udt_name.lstrip("_")
                    if type_label != f"{bare_name}_{name.lower()}_enum":
                        enum_name = type_label
                elif data_type == "USER-DEFINED":
                    type_name = udt_name

            spatial_feature_type = None
            srid = None
            spatial = _SPATIAL_PATTERN.match(row.get("formatted_type") or "")
            if spatial:
                type_name = spatial.group(1).lower()
                spatial_feature_type = spatial.group(2)
                srid = int(spatial.group(3)) if spatial.group(3) else None

            length = row["character_maximum_length"]
            columns.append(
                Column(
                    name=name,
                    type=type_name,
                    length=str(length) if length is not None else None,
                    precision=row["numeric_precision"] if data_type in _DECIMAL_TYPES else None,
                    scale=row["numeric_scale"] if data_type in _DECIMAL_TYPES else None,
                    is_nullable=row["is_nullable"] == "YES",
                    default=None if row.get("is_generated") == "ALWAYS" else _strip_cast(default),
                    generation_strategy=generation,
                    is_primary=name in primary_columns,
                    is_unique=name in single_uniques,
                    is_array=is_array,
                    enum=enum,
                    enum_name=enum_name,
                    collation=row.get("collation_name"),
                    spatial_feature_type=spatial_feature_type,
                    srid=srid,
                    as_expression=row.get("generation_expression") or None,
                    generated_type="STORED" if row.get("is_generated") == "ALWAYS" else None,
                    comment=row.get("description"),
                )
            )

        indices = []
        for index_name, rows in group_rows(
            indices_by_table.get(table_key, []), lambda row: row["index_name"]
        ).items():
            rows = sorted(rows, key=lambda row: row["position"])
            indices.append(
                Index(
                    column_names=tuple(row["column_name"] for row in rows),
                    name=index_name,
                    is_unique=bool(rows[0]["is_unique"]),
                    is_spatial=rows[0]["access_method"] == "gist",
                    where=rows[0]["condition"] or None,
                )
            )

        foreign_keys = []
        for constraint_name, rows in group_rows(
            keys_by_table.get(table_key, []), lambda row: row["constraint_name"]
        ).items():
            rows = sorted(rows, key=lambda row: row["position"])
            first = rows[0]
            referenced_schema = first["referenced_table_schema"]
            referenced = first["referenced_table_name"]
            if referenced_schema != current_schema:
                referenced = qualified_name(referenced_schema, referenced)
            foreign_keys.append(
                ForeignKey(
                    column_names=tuple(row["column_name"] for row in rows),
                    referenced_table_name=referenced,
                    referenced_column_names=tuple(row["referenced_column_name"] for row in rows),
                    name=constraint_name,
                    on_delete=_ACTIONS.get(first["on_delete"]),
                    on_update=_ACTIONS.get(first["on_update"]),
                    deferrable=_deferrable(first),
                )
            )

        tables.append(
            Table(
                name=table_name,
                columns=columns,
                indices=indices,
                uniques=uniques,
                checks=checks,
                exclusions=exclusions,
                foreign_keys=foreign_keys,
            )
        )
    return tables


class PostgresIntrospector(Introspector):
    """Reads ``information_schema`` and ``pg_catalog``.

    A batch costs six round trips: the current schema, columns, constraints,
    indices, foreign keys and enum labels.
    """

    async def _resolve_keys(self, names: Sequence[str]) -> tuple[dict[TableKey, str], str]:
        current_schema = await self.get_current_schema() or "public"
        keys: dict[TableKey, str] = {}
        for name in names:
            segments = name.split(".")
            schema = segments[-2] if len(segments) > 1 else (self.dialect.schema or current_schema)
            keys[(schema, segments[-1])] = name
        return keys, current_schema

    def _condition(self, keys: Sequence[TableKey], schema_column: str, table_column: str) -> str:
        return " OR ".join(
            f"({schema_column} = {self.dialect.literal(schema)} AND "
            f"{table_column} = {self.dialect.literal(table)})"
            for schema, table in keys
        )

    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        if not names:
            return []
        keys, current_schema = await self._resolve_keys(names)

        relation = (
            '(quote_ident("c"."table_schema") || \'.\' || quote_ident("c"."table_name"))::regclass'
        )
        column_filter = self._condition(list(keys), '"c"."table_schema"', '"c"."table_name"')
        column_rows = await self.fetch(
            f'SELECT "c".*, pg_catalog.col_description({relation}::oid, "c"."ordinal_position") '
            'AS "description", '
            'pg_catalog.format_type("a"."atttypid", "a"."atttypmod") AS "formatted_type" '
            'FROM "information_schema"."columns" "c" '
            f'LEFT JOIN "pg_catalog"."pg_attribute" "a" ON "a"."attrelid" = {relation} '
            'AND "a"."attname" = "c"."column_name" '
            f"WHERE {column_filter}"
        )
        if not column_rows:
            return []

        table_filter = self._condition(list(keys), '"ns"."nspname"', '"t"."relname"')
        constraint_rows = await self.fetch(
            'SELECT "ns"."nspname" AS "table_schema", "t"."relname" AS "table_name", '
            '"cnst"."conname" AS "constraint_name", "cnst"."contype" AS "constraint_type", '
            'pg_get_constraintdef("cnst"."oid") AS "definition", "a"."attname" AS "column_name" '
            'FROM "pg_constraint" "cnst" '
            'INNER JOIN "pg_class" "t" ON "t"."oid" = "cnst"."conrelid" '
            'INNER JOIN "pg_namespace" "ns" ON "ns"."oid" = "cnst"."connamespace" '
            'LEFT JOIN "pg_attribute" "a" ON "a"."attrelid" = "cnst"."conrelid" '
            'AND "a"."attnum" = ANY ("cnst"."conkey") '
            f"WHERE \"t\".\"relkind\" IN ('r', 'p') AND \"cnst\".\"contype\" IN ('p', 'u', 'c', 'x') "
            f"AND ({table_filter}) "
            'ORDER BY "cnst"."conname", array_position("cnst"."conkey", "a"."attnum")'
        )
        index_rows = await self.fetch(
            'SELECT "ns"."nspname" AS "table_schema", "t"."relname" AS "table_name", '
            '"i"."relname" AS "index_name", "a"."attname" AS "column_name", '
            'array_position("ix"."indkey"::int2[], "a"."attnum") AS "position", '
            '"ix"."indisunique" AS "is_unique", "am"."amname" AS "access_method", '
            'pg_get_expr("ix"."indpred", "ix"."indrelid") AS "condition" '
            'FROM "pg_class" "t" '
            'INNER JOIN "pg_index" "ix" ON "ix"."indrelid" = "t"."oid" '
            'INNER JOIN "pg_attribute" "a" ON "a"."attrelid" = "t"."oid" '
            'AND "a"."attnum" = ANY ("ix"."indkey") '
            'INNER JOIN "pg_namespace" "ns" ON "ns"."oid" = "t"."relnamespace" '
            'INNER JOIN "pg_class" "i" ON "i"."oid" = "ix"."indexrelid" '
            'INNER JOIN "pg_am" "am" ON "am"."oid" = "i"."relam" '
            'LEFT JOIN "pg_constraint" "cnst" ON "cnst"."conname" = "i"."relname" '
            f"WHERE \"t\".\"relkind\" IN ('r', 'p') AND \"cnst\".\"contype\" IS NULL "
            f"AND ({table_filter})"
        )
        key_filter = self._condition(list(keys), '"ns"."nspname"', '"cl"."relname"')
        foreign_key_rows = await self.fetch(
            'SELECT "ns"."nspname" AS "table_schema", "cl"."relname" AS "table_name", '
            '"con"."conname" AS "constraint_name", "con"."position" AS "position", '
            '"att2"."attname" AS "column_name", "ns2"."nspname" AS "referenced_table_schema", '
            '"cl2"."relname" AS "referenced_table_name", "att"."attname" AS "referenced_column_name", '
            '"con"."confdeltype" AS "on_delete", "con"."confupdtype" AS "on_update", '
            '"con"."condeferrable" AS "is_deferrable", "con"."condeferred" AS "is_deferred" '
            'FROM ( SELECT "c".*, "k"."child", "k"."parent", "k"."position" '
            'FROM "pg_constraint" "c", unnest("c"."conkey", "c"."confkey") '
            'WITH ORDINALITY AS "k"("child", "parent", "position") '
            "WHERE \"c\".\"contype\" = 'f' ) \"con\" "
            'INNER JOIN "pg_class" "cl" ON "cl"."oid" = "con"."conrelid" '
            'INNER JOIN "pg_namespace" "ns" ON "ns"."oid" = "cl"."relnamespace" '
            'INNER JOIN "pg_attribute" "att2" ON "att2"."attrelid" = "con"."conrelid" '
            'AND "att2"."attnum" = "con"."child" '
            'INNER JOIN "pg_class" "cl2" ON "cl2"."oid" = "con"."confrelid" '
            'INNER JOIN "pg_namespace" "ns2" ON "ns2"."oid" = "cl2"."relnamespace" '
            'INNER JOIN "pg_attribute" "att" ON "att"."attrelid" = "con"."confrelid" '
            'AND "att"."attnum" = "con"."parent" '
            f"WHERE {key_filter}"
        )

        enum_types = {
            (row["udt_schema"], row["udt_name"].lstrip("_"))
            for row in column_rows
            if row["data_type"] in ("USER-DEFINED", "ARRAY")
        }
        enum_rows: list[RowType] = []
        if enum_types:
            enum_filter = self._condition(sorted(enum_types), '"n"."nspname"', '"t"."typname"')
            enum_rows = await self.fetch(
                'SELECT "n"."nspname" AS "type_schema", "t"."typname" AS "type_name", '
                '"e"."enumlabel" AS "value", "e"."enumsortorder" AS "sort_order" '
                'FROM "pg_enum" "e" '
                'INNER JOIN "pg_type" "t" ON "t"."oid" = "e"."enumtypid" '
                'INNER JOIN "pg_namespace" "n" ON "n"."oid" = "t"."typnamespace" '
                f"WHERE {enum_filter}"
            )

        return build_postgres_tables(
            keys,
            column_rows,
            constraint_rows,
            index_rows,
            foreign_key_rows,
            enum_rows,
            current_schema,
        )

    async def has_table(self, name: str) -> bool:
        keys, _ = await self._resolve_keys([name])
        rows = await self.fetch(
            'SELECT 1 AS "found" FROM "information_schema"."tables" '
            f'WHERE {self._condition(list(keys), "table_schema", "table_name")}'
        )
        return bool(rows)

    async def has_column(self, table_name: str, column_name: str) -> bool:
        keys, _ = await self._resolve_keys([table_name])
        rows = await self.fetch(
            'SELECT 1 AS "found" FROM "information_schema"."columns" '
            f'WHERE ({self._condition(list(keys), "table_schema", "table_name")}) '
            f'AND "column_name" = {self.dialect.literal(column_name)}'
        )
        return bool(rows)

    async def get_table_names(self, database: str | None = None) -> list[str]:
        current_schema = await self.get_current_schema()
        rows = await self.fetch(
            'SELECT "table_schema", "table_name" FROM "information_schema"."tables" '
            "WHERE \"table_type\" = 'BASE TABLE' "
            "AND \"table_schema\" NOT IN ('pg_catalog', 'information_schema') "
            "AND \"table_schema\" NOT LIKE 'pg_toast%'"
        )
        return [
            row["table_name"]
            if row["table_schema"] == current_schema
            else qualified_name(row["table_schema"], row["table_name"])
            for row in rows
        ]

    async def get_view_names(self, database: str | None = None) -> list[tuple[str, bool]]:
        rows = await self.fetch(
            'SELECT "schemaname" AS "schema", "viewname" AS "name", FALSE AS "materialized" '
            "FROM \"pg_views\" WHERE \"schemaname\" NOT IN ('pg_catalog', 'information_schema') "
            'UNION ALL SELECT "schemaname", "matviewname", TRUE FROM "pg_matviews"'
        )
        current_schema = await self.get_current_schema()
        return [
            (
                row["name"] if row["schema"] == current_schema else qualified_name(row["schema"], row["name"]),
                bool(row["materialized"]),
            )
            for row in rows
        ]

    async def get_enum_type_names(self) -> list[str]:
        current_schema = await self.get_current_schema()
        rows = await self.fetch(
            'SELECT DISTINCT "n"."nspname" AS "schema", "t"."typname" AS "name" '
            'FROM "pg_type" "t" '
            'INNER JOIN "pg_enum" "e" ON "e"."enumtypid" = "t"."oid" '
            'INNER JOIN "pg_namespace" "n" ON "n"."oid" = "t"."typnamespace" '
            "WHERE \"n\".\"nspname\" NOT IN ('pg_catalog', 'information_schema')"
        )
        return [
            row["name"] if row["schema"] == current_schema else qualified_name(row["schema"], row["name"])
            for row in rows
        ]

    async def has_database(self, name: str) -> bool:
        rows = await self.fetch(
            f'SELECT 1 AS "found" FROM "pg_database" WHERE "datname" = {self.dialect.literal(name)}'
        )
        return bool(rows)

    async def has_schema(self, name: str) -> bool:
        rows = await self.fetch(
            'SELECT 1 AS "found" FROM "information_schema"."schemata" WHERE "schema_name" = '
            f'{self.dialect.literal(name.split(".")[-1])}'
        )
        return bool(rows)

    async def get_databases(self) -> list[str]:
        rows = await self.fetch(
            'SELECT "datname" FROM "pg_database" WHERE NOT "datistemplate"'
        )
        return [row["datname"] for row in rows]

    async def get_schemas(self, database: str | None = None) -> list[str]:
        rows = await self.fetch(
            'SELECT "schema_name" FROM "information_schema"."schemata" '
            "WHERE \"schema_name\" NOT IN ('pg_catalog', 'information_schema') "
            "AND \"schema_name\" NOT LIKE 'pg_toast%'"
        )
        return [row["schema_name"] for row in rows]
