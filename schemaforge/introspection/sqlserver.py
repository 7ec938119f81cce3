"""SQL Server catalog introspection."""

from collections.abc import Sequence

from schemaforge.schema import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Table,
    UniqueConstraint,
)
from schemaforge.types import GenerationStrategy, RowType

from .base import (
    Introspector,
    group_rows,
    normalize_action,
    parse_enum_values,
    qualified_name,
    unique_in_order,
)

_DECIMAL_TYPES = ("decimal", "numeric")
_LENGTH_TYPES = ("char", "varchar", "nchar", "nvarchar", "binary", "varbinary")
_UUID_DEFAULTS = ("newsequentialid()", "newid()")

# (database, schema, table)
TableKey = tuple[str, str, str]


def _unwrap(definition: str | None) -> str | None:
    """Strip the parentheses SQL Server wraps stored definitions in."""
    if definition is None:
        return None
    value = definition.strip()
    while value.startswith("(") and value.endswith(")") and _balanced(value[1:-1]):
        value = value[1:-1].strip()
    return value


def _balanced(text: str) -> bool:
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _action(description: str | None) -> str | None:
    return normalize_action(description.replace("_", " ") if description else None)


def build_sqlserver_tables(
    names: dict[TableKey, str],
    column_rows: Sequence[RowType],
    constraint_rows: Sequence[RowType],
    index_rows: Sequence[RowType],
    foreign_key_rows: Sequence[RowType],
    current_database: str,
    current_schema: str,
) -> list[Table]:
    """Build table models from ``INFORMATION_SCHEMA`` and ``sys`` rows.

    Checks named ``CHK_..._ENUM`` are folded back into the enum value list
    of the column they guard.

    Args:
        names: Requested table name keyed by ``(database, schema, table)``
        column_rows: Column rows with identity, computed and default info
        constraint_rows: Primary key, unique and check constraint rows
        index_rows: ``sys.indexes`` rows not backing a constraint
        foreign_key_rows: ``sys.foreign_key_columns`` rows
        current_database: Database unqualified names resolve to
        current_schema: Schema unqualified names resolve to

    Returns:
        Table models for the tables present in ``column_rows``
    """

    def key(row: RowType) -> TableKey:
        return (row["TABLE_CATALOG"], row["TABLE_SCHEMA"], row["TABLE_NAME"])

    columns_by_table = group_rows(column_rows, key)
    constraints_by_table = group_rows(constraint_rows, key)
    indices_by_table = group_rows(index_rows, key)
    keys_by_table = group_rows(foreign_key_rows, key)

    tables = []
    for table_key, table_name in names.items():
        if table_key not in columns_by_table:
            continue

        primary_columns: set[str] = set()
        uniques = []
        checks = []
        enum_values: dict[str, tuple[str, ...]] = {}
        for constraint_name, rows in group_rows(
            constraints_by_table.get(table_key, []), lambda row: row["CONSTRAINT_NAME"]
        ).items():
            kind = rows[0]["CONSTRAINT_TYPE"]
            column_names = tuple(unique_in_order(row["COLUMN_NAME"] for row in rows))
            if kind == "PRIMARY KEY":
                primary_columns.update(column_names)
            elif kind == "UNIQUE":
                uniques.append(UniqueConstraint(column_names=column_names, name=constraint_name))
            elif kind == "CHECK":
                expression = _unwrap(rows[0]["CHECK_CLAUSE"]) or ""
                if constraint_name.endswith("_ENUM") and len(column_names) == 1:
                    enum_values[column_names[0]] = parse_enum_values(expression)
                    continue
                checks.append(
                    CheckConstraint(
                        expression=expression, name=constraint_name, column_names=column_names
                    )
                )
        single_uniques = {unique.column_names[0] for unique in uniques if len(unique.column_names) == 1}

        columns = []
        for row in sorted(columns_by_table[table_key], key=lambda row: row["ORDINAL_POSITION"]):
            name = row["COLUMN_NAME"]
            data_type = row["DATA_TYPE"].lower()
            default = _unwrap(row.get("COLUMN_DEFAULT"))
            generation = GenerationStrategy.NONE
            if row.get("IS_IDENTITY"):
                generation = GenerationStrategy.INCREMENT
            elif default is not None and default.lower() in _UUID_DEFAULTS:
                generation = GenerationStrategy.UUID
                default = None
            length = row["CHARACTER_MAXIMUM_LENGTH"] if data_type in _LENGTH_TYPES else None
            if length == -1:
                length = "MAX"
            enum = enum_values.get(name)
            computed = _unwrap(row.get("COMPUTED_DEFINITION"))
            collation = row.get("COLLATION_NAME")
            columns.append(
                Column(
                    name=name,
                    type="enum" if enum is not None else data_type,
                    length=str(length) if length is not None else None,
                    precision=row["NUMERIC_PRECISION"] if data_type in _DECIMAL_TYPES else None,
                    scale=row["NUMERIC_SCALE"] if data_type in _DECIMAL_TYPES else None,
                    is_nullable=row["IS_NULLABLE"] == "YES",
                    default=default,
                    generation_strategy=generation,
                    is_primary=name in primary_columns,
                    is_unique=name in single_uniques,
                    enum=enum,
                    collation=None if collation == row.get("DATABASE_COLLATION") else collation,
                    as_expression=computed,
                    generated_type=(
                        ("STORED" if row.get("IS_PERSISTED") else "VIRTUAL") if computed else None
                    ),
                )
            )

        indices = []
        for index_name, rows in group_rows(
            indices_by_table.get(table_key, []), lambda row: row["INDEX_NAME"]
        ).items():
            rows = sorted(rows, key=lambda row: row["KEY_ORDINAL"])
            indices.append(
                Index(
                    column_names=tuple(row["COLUMN_NAME"] for row in rows),
                    name=index_name,
                    is_unique=bool(rows[0]["IS_UNIQUE"]),
                    where=_unwrap(rows[0]["FILTER_DEFINITION"]) if rows[0]["HAS_FILTER"] else None,
                )
            )

        foreign_keys = []
        for constraint_name, rows in group_rows(
            keys_by_table.get(table_key, []), lambda row: row["FK_NAME"]
        ).items():
            rows = sorted(rows, key=lambda row: row["CONSTRAINT_COLUMN_ID"])
            first = rows[0]
            referenced_segments = [first["REF_TABLE"]]
            if first["REF_SCHEMA"] != current_schema or first["TABLE_CATALOG"] != current_database:
                referenced_segments.insert(0, first["REF_SCHEMA"])
            if first["TABLE_CATALOG"] != current_database:
                referenced_segments.insert(0, first["TABLE_CATALOG"])
            foreign_keys.append(
                ForeignKey(
                    column_names=tuple(row["COLUMN_NAME"] for row in rows),
                    referenced_table_name=qualified_name(*referenced_segments),
                    referenced_column_names=tuple(row["REF_COLUMN"] for row in rows),
                    name=constraint_name,
                    on_delete=_action(first["ON_DELETE"]),
                    on_update=_action(first["ON_UPDATE"]),
                )
            )

        tables.append(
            Table(
                name=table_name,
                columns=columns,
                indices=indices,
                uniques=uniques,
                checks=checks,
                foreign_keys=foreign_keys,
            )
        )
    return tables


class SQLServerIntrospector(Introspector):
    """Reads ``INFORMATION_SCHEMA`` and ``sys`` catalog views.

    Each catalog query is a ``UNION ALL`` over the databases the requested
    tables live in, so the round trip count does not grow with the batch.
    """

    async def _resolve_keys(self, names: Sequence[str]) -> tuple[dict[TableKey, str], str, str]:
        current_database = await self.get_current_database() or ""
        current_schema = await self.get_current_schema() or "dbo"
        keys: dict[TableKey, str] = {}
        for name in names:
            segments = name.split(".")
            table = segments[-1]
            schema = segments[-2] if len(segments) > 1 else (self.dialect.schema or current_schema)
            database = segments[-3] if len(segments) > 2 else (self.dialect.database or current_database)
            keys[(database, schema, table)] = name
        return keys, current_database, current_schema

    def _union(self, keys: Sequence[TableKey], template: str, schema_column: str, table_column: str) -> str:
        """Instantiate ``template`` once per database and join the results.

        ``template`` takes ``{db}`` (quoted database), ``{db_literal}`` and
        ``{filter}`` placeholders.
        """
        by_database = group_rows(
            [{"db": database, "schema": schema, "table": table} for database, schema, table in keys],
            lambda row: row["db"],
        )
        selects = []
        for database, rows in by_database.items():
            condition = " OR ".join(
                f"({schema_column} = {self.dialect.literal(row['schema'])} AND "
                f"{table_column} = {self.dialect.literal(row['table'])})"
                for row in rows
            )
            selects.append(
                template.format(
                    db=self.dialect.escape(database),
                    db_literal=self.dialect.literal(database),
                    filter=condition,
                )
            )
        return " UNION ALL ".join(selects)

    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        if not names:
            return []
        keys, current_database, current_schema = await self._resolve_keys(names)
        key_list = list(keys)

        column_rows = await self.fetch(
            self._union(
                key_list,
                "SELECT {db_literal} AS \"TABLE_CATALOG\", \"c\".\"TABLE_SCHEMA\", \"c\".\"TABLE_NAME\", "
                "\"c\".\"COLUMN_NAME\", \"c\".\"ORDINAL_POSITION\", \"c\".\"DATA_TYPE\", "
                "\"c\".\"CHARACTER_MAXIMUM_LENGTH\", \"c\".\"NUMERIC_PRECISION\", \"c\".\"NUMERIC_SCALE\", "
                "\"c\".\"IS_NULLABLE\", \"c\".\"COLLATION_NAME\", "
                "CAST(DATABASEPROPERTYEX({db_literal}, 'Collation') AS nvarchar(128)) AS \"DATABASE_COLLATION\", "
                "\"sc\".\"is_identity\" AS \"IS_IDENTITY\", \"cc\".\"definition\" AS \"COMPUTED_DEFINITION\", "
                "\"cc\".\"is_persisted\" AS \"IS_PERSISTED\", \"dc\".\"definition\" AS \"COLUMN_DEFAULT\" "
                "FROM {db}.\"INFORMATION_SCHEMA\".\"COLUMNS\" \"c\" "
                "INNER JOIN {db}.\"sys\".\"schemas\" \"s\" ON \"s\".\"name\" = \"c\".\"TABLE_SCHEMA\" "
                "INNER JOIN {db}.\"sys\".\"tables\" \"t\" ON \"t\".\"schema_id\" = \"s\".\"schema_id\" "
                "AND \"t\".\"name\" = \"c\".\"TABLE_NAME\" "
                "INNER JOIN {db}.\"sys\".\"columns\" \"sc\" ON \"sc\".\"object_id\" = \"t\".\"object_id\" "
                "AND \"sc\".\"name\" = \"c\".\"COLUMN_NAME\" "
                "LEFT JOIN {db}.\"sys\".\"computed_columns\" \"cc\" ON \"cc\".\"object_id\" = \"sc\".\"object_id\" "
                "AND \"cc\".\"column_id\" = \"sc\".\"column_id\" "
                "LEFT JOIN {db}.\"sys\".\"default_constraints\" \"dc\" ON \"dc\".\"object_id\" = \"sc\".\"default_object_id\" "
                "WHERE {filter}",
                '"c"."TABLE_SCHEMA"',
                '"c"."TABLE_NAME"',
            )
        )
        if not column_rows:
            return []

        constraint_rows = await self.fetch(
            self._union(
                key_list,
                "SELECT {db_literal} AS \"TABLE_CATALOG\", \"tc\".\"TABLE_SCHEMA\", \"tc\".\"TABLE_NAME\", "
                "\"tc\".\"CONSTRAINT_NAME\", \"tc\".\"CONSTRAINT_TYPE\", \"ccu\".\"COLUMN_NAME\", "
                "\"chk\".\"CHECK_CLAUSE\" "
                "FROM {db}.\"INFORMATION_SCHEMA\".\"TABLE_CONSTRAINTS\" \"tc\" "
                "INNER JOIN {db}.\"INFORMATION_SCHEMA\".\"CONSTRAINT_COLUMN_USAGE\" \"ccu\" "
                "ON \"ccu\".\"CONSTRAINT_SCHEMA\" = \"tc\".\"CONSTRAINT_SCHEMA\" "
                "AND \"ccu\".\"CONSTRAINT_NAME\" = \"tc\".\"CONSTRAINT_NAME\" "
                "LEFT JOIN {db}.\"INFORMATION_SCHEMA\".\"CHECK_CONSTRAINTS\" \"chk\" "
                "ON \"chk\".\"CONSTRAINT_SCHEMA\" = \"tc\".\"CONSTRAINT_SCHEMA\" "
                "AND \"chk\".\"CONSTRAINT_NAME\" = \"tc\".\"CONSTRAINT_NAME\" "
                "WHERE \"tc\".\"CONSTRAINT_TYPE\" IN ('PRIMARY KEY', 'UNIQUE', 'CHECK') AND ({filter})",
                '"tc"."TABLE_SCHEMA"',
                '"tc"."TABLE_NAME"',
            )
        )
        index_rows = await self.fetch(
            self._union(
                key_list,
                "SELECT {db_literal} AS \"TABLE_CATALOG\", \"s\".\"name\" AS \"TABLE_SCHEMA\", "
                "\"t\".\"name\" AS \"TABLE_NAME\", \"i\".\"name\" AS \"INDEX_NAME\", "
                "\"c\".\"name\" AS \"COLUMN_NAME\", \"ic\".\"key_ordinal\" AS \"KEY_ORDINAL\", "
                "\"i\".\"is_unique\" AS \"IS_UNIQUE\", \"i\".\"has_filter\" AS \"HAS_FILTER\", "
                "\"i\".\"filter_definition\" AS \"FILTER_DEFINITION\" "
                "FROM {db}.\"sys\".\"indexes\" \"i\" "
                "INNER JOIN {db}.\"sys\".\"index_columns\" \"ic\" ON \"ic\".\"object_id\" = \"i\".\"object_id\" "
                "AND \"ic\".\"index_id\" = \"i\".\"index_id\" "
                "INNER JOIN {db}.\"sys\".\"columns\" \"c\" ON \"c\".\"object_id\" = \"ic\".\"object_id\" "
                "AND \"c\".\"column_id\" = \"ic\".\"column_id\" "
                "INNER JOIN {db}.\"sys\".\"tables\" \"t\" ON \"t\".\"object_id\" = \"i\".\"object_id\" "
                "INNER JOIN {db}.\"sys\".\"schemas\" \"s\" ON \"s\".\"schema_id\" = \"t\".\"schema_id\" "
                "WHERE \"i\".\"is_primary_key\" = 0 AND \"i\".\"is_unique_constraint\" = 0 "
                "AND \"i\".\"name\" IS NOT NULL AND ({filter})",
                '"s"."name"',
                '"t"."name"',
            )
        )
        foreign_key_rows = await self.fetch(
            self._union(
                key_list,
                "SELECT {db_literal} AS \"TABLE_CATALOG\", \"s1\".\"name\" AS \"TABLE_SCHEMA\", "
                "\"t1\".\"name\" AS \"TABLE_NAME\", \"fk\".\"name\" AS \"FK_NAME\", "
                "\"c1\".\"name\" AS \"COLUMN_NAME\", \"fkc\".\"constraint_column_id\" AS \"CONSTRAINT_COLUMN_ID\", "
                "\"s2\".\"name\" AS \"REF_SCHEMA\", \"t2\".\"name\" AS \"REF_TABLE\", "
                "\"c2\".\"name\" AS \"REF_COLUMN\", "
                "\"fk\".\"delete_referential_action_desc\" AS \"ON_DELETE\", "
                "\"fk\".\"update_referential_action_desc\" AS \"ON_UPDATE\" "
                "FROM {db}.\"sys\".\"foreign_keys\" \"fk\" "
                "INNER JOIN {db}.\"sys\".\"foreign_key_columns\" \"fkc\" "
                "ON \"fkc\".\"constraint_object_id\" = \"fk\".\"object_id\" "
                "INNER JOIN {db}.\"sys\".\"tables\" \"t1\" ON \"t1\".\"object_id\" = \"fk\".\"parent_object_id\" "
                "INNER JOIN {db}.\"sys\".\"schemas\" \"s1\" ON \"s1\".\"schema_id\" = \"t1\".\"schema_id\" "
                "INNER JOIN {db}.\"sys\".\"columns\" \"c1\" ON \"c1\".\"object_id\" = \"fkc\".\"parent_object_id\" "
                "AND \"c1\".\"column_id\" = \"fkc\".\"parent_column_id\" "
                "INNER JOIN {db}.\"sys\".\"tables\" \"t2\" ON \"t2\".\"object_id\" = \"fk\".\"referenced_object_id\" "
                "INNER JOIN {db}.\"sys\".\"schemas\" \"s2\" ON \"s2\".\"schema_id\" = \"t2\".\"schema_id\" "
                "INNER JOIN {db}.\"sys\".\"columns\" \"c2\" ON \"c2\".\"object_id\" = \"fkc\".\"referenced_object_id\" "
                "AND \"c2\".\"column_id\" = \"fkc\".\"referenced_column_id\" "
                "WHERE {filter}",
                '"s1"."name"',
                '"t1"."name"',
            )
        )
        return build_sqlserver_tables(
            keys,
            column_rows,
            constraint_rows,
            index_rows,
            foreign_key_rows,
            current_database,
            current_schema,
        )

    async def has_table(self, name: str) -> bool:
        keys, _, _ = await self._resolve_keys([name])
        rows = await self.fetch(
            self._union(
                list(keys),
                "SELECT 1 AS \"found\" FROM {db}.\"INFORMATION_SCHEMA\".\"TABLES\" WHERE {filter}",
                '"TABLE_SCHEMA"',
                '"TABLE_NAME"',
            )
        )
        return bool(rows)

    async def has_column(self, table_name: str, column_name: str) -> bool:
        keys, _, _ = await self._resolve_keys([table_name])
        rows = await self.fetch(
            self._union(
                list(keys),
                "SELECT 1 AS \"found\" FROM {db}.\"INFORMATION_SCHEMA\".\"COLUMNS\" "
                f"WHERE ({{filter}}) AND \"COLUMN_NAME\" = {self.dialect.literal(column_name)}",
                '"TABLE_SCHEMA"',
                '"TABLE_NAME"',
            )
        )
        return bool(rows)

    async def _catalog_names(self, view: str, condition: str, database: str | None) -> list[str]:
        # Names in another database are returned fully qualified
        prefix = f"{self.dialect.escape(database)}." if database else ""
        rows = await self.fetch(
            f'SELECT "TABLE_SCHEMA", "TABLE_NAME" FROM {prefix}"INFORMATION_SCHEMA".{view}{condition}'
        )
        if database:
            return [
                qualified_name(database, row["TABLE_SCHEMA"], row["TABLE_NAME"]) for row in rows
            ]
        current_schema = await self.get_current_schema()
        return [
            row["TABLE_NAME"]
            if row["TABLE_SCHEMA"] == current_schema
            else qualified_name(row["TABLE_SCHEMA"], row["TABLE_NAME"])
            for row in rows
        ]

    async def get_table_names(self, database: str | None = None) -> list[str]:
        return await self._catalog_names(
            '"TABLES"', " WHERE \"TABLE_TYPE\" = 'BASE TABLE'", database
        )

    async def get_view_names(self, database: str | None = None) -> list[tuple[str, bool]]:
        names = await self._catalog_names('"VIEWS"', "", database)
        return [(name, False) for name in names]

    async def has_database(self, name: str) -> bool:
        value = await self.fetch_value(f"SELECT DB_ID({self.dialect.literal(name)}) AS \"db_id\"")
        return value is not None

    async def has_schema(self, name: str) -> bool:
        schema = name.split(".")[-1]
        value = await self.fetch_value(f"SELECT SCHEMA_ID({self.dialect.literal(schema)}) AS \"schema_id\"")
        return value is not None

    async def get_databases(self) -> list[str]:
        rows = await self.fetch('SELECT "name" FROM "master"."sys"."databases"')
        return [row["name"] for row in rows]

    async def get_schemas(self, database: str | None = None) -> list[str]:
        prefix = f"{self.dialect.escape(database)}." if database else ""
        rows = await self.fetch(f'SELECT "name" FROM {prefix}"sys"."schemas"')
        return [row["name"] for row in rows]
