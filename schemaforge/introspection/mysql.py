"""MySQL and MariaDB catalog introspection."""

from collections.abc import Sequence

from schemaforge.schema import Column, ForeignKey, Index, Table, UniqueConstraint
from schemaforge.types import GenerationStrategy, RowType

from .base import (
    Introspector,
    group_rows,
    normalize_action,
    parse_enum_values,
    qualified_name,
)

_LENGTH_TYPES = ("char", "varchar", "nchar", "nvarchar", "binary", "varbinary")
_DECIMAL_TYPES = ("decimal", "numeric", "dec", "fixed")
_STRING_TYPES = _LENGTH_TYPES + ("enum", "set", "text", "tinytext", "mediumtext", "longtext")
_DEFAULT_FUNCTIONS = ("CURRENT_TIMESTAMP", "NOW(", "UUID(")

TableKey = tuple[str, str]


def _default(row: RowType) -> str | None:
    """Render ``COLUMN_DEFAULT`` as the SQL expression the dialect emits."""
    default = row["COLUMN_DEFAULT"]
    if default is None or (default == "NULL" and row["IS_NULLABLE"] == "YES"):
        return None
    if row["DATA_TYPE"] in _STRING_TYPES and not default.upper().startswith(_DEFAULT_FUNCTIONS):
        # MariaDB reports string defaults already quoted
        if default.startswith("'") and default.endswith("'"):
            return default
        escaped = default.replace("'", "''")
        return f"'{escaped}'"
    return default


def build_mysql_tables(
    names: dict[TableKey, str],
    column_rows: Sequence[RowType],
    index_rows: Sequence[RowType],
    foreign_key_rows: Sequence[RowType],
    database_rows: Sequence[RowType],
    table_rows: Sequence[RowType],
    current_database: str,
) -> list[Table]:
    """Build table models from ``information_schema`` rows.

    Unique indices are reported twice: as indices and as logical unique
    constraints with the same name, which is how the dialect creates them.
    Charsets and collations equal to the database default are left unset.

    Args:
        names: Requested table name keyed by ``(database, table)``
        column_rows: ``COLUMNS`` rows
        index_rows: ``STATISTICS`` rows
        foreign_key_rows: ``KEY_COLUMN_USAGE`` joined with ``REFERENTIAL_CONSTRAINTS``
        database_rows: ``SCHEMATA`` rows with default charset and collation
        table_rows: ``TABLES`` rows with the storage engine
        current_database: Database unqualified names resolve to

    Returns:
        Table models for the tables present in ``column_rows``
    """

    def key(row: RowType) -> TableKey:
        return (row["TABLE_SCHEMA"], row["TABLE_NAME"])

    columns_by_table = group_rows(column_rows, key)
    indices_by_table = group_rows(index_rows, key)
    keys_by_table = group_rows(foreign_key_rows, key)
    databases = {row["SCHEMA_NAME"]: row for row in database_rows}
    engines = {key(row): row["ENGINE"] for row in table_rows}

    tables = []
    for table_key, table_name in names.items():
        if table_key not in columns_by_table:
            continue
        database = databases.get(table_key[0], {})

        foreign_key_groups = group_rows(
            keys_by_table.get(table_key, []), lambda row: row["CONSTRAINT_NAME"]
        )
        indices = []
        uniques = []
        for index_name, rows in group_rows(
            indices_by_table.get(table_key, []), lambda row: row["INDEX_NAME"]
        ).items():
            # InnoDB creates an index named after each foreign key
            if index_name == "PRIMARY" or index_name in foreign_key_groups:
                continue
            rows = sorted(rows, key=lambda row: row["SEQ_IN_INDEX"])
            column_names = tuple(row["COLUMN_NAME"] for row in rows)
            is_unique = str(rows[0]["NON_UNIQUE"]) == "0"
            index_type = rows[0]["INDEX_TYPE"]
            indices.append(
                Index(
                    column_names=column_names,
                    name=index_name,
                    is_unique=is_unique,
                    is_spatial=index_type == "SPATIAL",
                    is_fulltext=index_type == "FULLTEXT",
                )
            )
            if is_unique:
                uniques.append(UniqueConstraint(column_names=column_names, name=index_name))
        single_uniques = {unique.column_names[0] for unique in uniques if len(unique.column_names) == 1}

        columns = []
        for row in sorted(columns_by_table[table_key], key=lambda row: row["ORDINAL_POSITION"]):
            data_type = row["DATA_TYPE"].lower()
            extra = (row.get("EXTRA") or "").upper()
            enum = None
            if data_type in ("enum", "set"):
                enum = parse_enum_values(row["COLUMN_TYPE"])
            length = row["CHARACTER_MAXIMUM_LENGTH"] if data_type in _LENGTH_TYPES else None
            generated_type = None
            if "VIRTUAL GENERATED" in extra:
                generated_type = "VIRTUAL"
            elif "STORED GENERATED" in extra:
                generated_type = "STORED"
            charset = row.get("CHARACTER_SET_NAME")
            collation = row.get("COLLATION_NAME")
            columns.append(
                Column(
                    name=row["COLUMN_NAME"],
                    type="enum" if data_type == "enum" else data_type,
                    length=str(length) if length is not None else None,
                    precision=row["NUMERIC_PRECISION"] if data_type in _DECIMAL_TYPES else None,
                    scale=row["NUMERIC_SCALE"] if data_type in _DECIMAL_TYPES else None,
                    is_nullable=row["IS_NULLABLE"] == "YES",
                    default=None if generated_type else _default(row),
                    generation_strategy=(
                        GenerationStrategy.INCREMENT
                        if "AUTO_INCREMENT" in extra
                        else GenerationStrategy.NONE
                    ),
                    is_primary=row["COLUMN_KEY"] == "PRI",
                    is_unique=row["COLUMN_NAME"] in single_uniques,
                    enum=enum,
                    charset=None if charset == database.get("DEFAULT_CHARACTER_SET_NAME") else charset,
                    collation=None if collation == database.get("DEFAULT_COLLATION_NAME") else collation,
                    as_expression=row.get("GENERATION_EXPRESSION") or None,
                    generated_type=generated_type,
                    comment=row.get("COLUMN_COMMENT") or None,
                )
            )

        foreign_keys = []
        for constraint_name, rows in foreign_key_groups.items():
            rows = sorted(rows, key=lambda row: row["ORDINAL_POSITION"])
            first = rows[0]
            referenced = first["REFERENCED_TABLE_NAME"]
            if first["REFERENCED_TABLE_SCHEMA"] != current_database:
                referenced = qualified_name(first["REFERENCED_TABLE_SCHEMA"], referenced)
            foreign_keys.append(
                ForeignKey(
                    column_names=tuple(row["COLUMN_NAME"] for row in rows),
                    referenced_table_name=referenced,
                    referenced_column_names=tuple(row["REFERENCED_COLUMN_NAME"] for row in rows),
                    name=constraint_name,
                    on_delete=normalize_action(first["DELETE_RULE"]),
                    on_update=normalize_action(first["UPDATE_RULE"]),
                )
            )

        engine = engines.get(table_key)
        tables.append(
            Table(
                name=table_name,
                columns=columns,
                indices=indices,
                uniques=uniques,
                foreign_keys=foreign_keys,
                engine=None if engine == "InnoDB" else engine,
            )
        )
    return tables


class MySQLIntrospector(Introspector):
    """Reads ``information_schema`` in five queries per batch."""

    async def _resolve_keys(self, names: Sequence[str]) -> tuple[dict[TableKey, str], str]:
        current_database = await self.get_current_database() or ""
        keys: dict[TableKey, str] = {}
        for name in names:
            segments = name.split(".")
            database = segments[-2] if len(segments) > 1 else (self.dialect.database or current_database)
            keys[(database, segments[-1])] = name
        return keys, current_database

    def _condition(self, keys: Sequence[TableKey], prefix: str = "") -> str:
        return " OR ".join(
            f"({prefix}`TABLE_SCHEMA` = {self.dialect.literal(database)} AND "
            f"{prefix}`TABLE_NAME` = {self.dialect.literal(table)})"
            for database, table in keys
        )

    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        if not names:
            return []
        keys, current_database = await self._resolve_keys(names)
        condition = self._condition(list(keys))

        column_rows = await self.fetch(
            f"SELECT * FROM `INFORMATION_SCHEMA`.`COLUMNS` WHERE {condition}"
        )
        if not column_rows:
            return []
        table_rows = await self.fetch(
            "SELECT `TABLE_SCHEMA`, `TABLE_NAME`, `ENGINE` FROM `INFORMATION_SCHEMA`.`TABLES` "
            f"WHERE {condition}"
        )
        database_names = ", ".join(
            self.dialect.literal(database) for database in sorted({database for database, _ in keys})
        )
        database_rows = await self.fetch(
            "SELECT `SCHEMA_NAME`, `DEFAULT_CHARACTER_SET_NAME`, `DEFAULT_COLLATION_NAME` "
            f"FROM `INFORMATION_SCHEMA`.`SCHEMATA` WHERE `SCHEMA_NAME` IN ({database_names})"
        )
        index_rows = await self.fetch(
            "SELECT `TABLE_SCHEMA`, `TABLE_NAME`, `INDEX_NAME`, `SEQ_IN_INDEX`, `COLUMN_NAME`, "
            "`NON_UNIQUE`, `INDEX_TYPE` FROM `INFORMATION_SCHEMA`.`STATISTICS` "
            f"WHERE {condition}"
        )
        foreign_key_rows = await self.fetch(
            "SELECT `kcu`.`TABLE_SCHEMA`, `kcu`.`TABLE_NAME`, `kcu`.`CONSTRAINT_NAME`, "
            "`kcu`.`COLUMN_NAME`, `kcu`.`ORDINAL_POSITION`, `kcu`.`REFERENCED_TABLE_SCHEMA`, "
            "`kcu`.`REFERENCED_TABLE_NAME`, `kcu`.`REFERENCED_COLUMN_NAME`, "
            "`rc`.`DELETE_RULE`, `rc`.`UPDATE_RULE` "
            "FROM `INFORMATION_SCHEMA`.`KEY_COLUMN_USAGE` `kcu` "
            "INNER JOIN `INFORMATION_SCHEMA`.`REFERENTIAL_CONSTRAINTS` `rc` "
            "ON `rc`.`CONSTRAINT_SCHEMA` = `kcu`.`CONSTRAINT_SCHEMA` "
            "AND `rc`.`CONSTRAINT_NAME` = `kcu`.`CONSTRAINT_NAME` "
            f"WHERE `kcu`.`REFERENCED_TABLE_NAME` IS NOT NULL AND ({self._condition(list(keys), '`kcu`.')})"
        )
        return build_mysql_tables(
            keys,
            column_rows,
            index_rows,
            foreign_key_rows,
            database_rows,
            table_rows,
            current_database,
        )

    async def has_table(self, name: str) -> bool:
        keys, _ = await self._resolve_keys([name])
        rows = await self.fetch(
            f"SELECT 1 AS `found` FROM `INFORMATION_SCHEMA`.`TABLES` WHERE {self._condition(list(keys))}"
        )
        return bool(rows)

    async def has_column(self, table_name: str, column_name: str) -> bool:
        keys, _ = await self._resolve_keys([table_name])
        rows = await self.fetch(
            "SELECT 1 AS `found` FROM `INFORMATION_SCHEMA`.`COLUMNS` "
            f"WHERE ({self._condition(list(keys))}) "
            f"AND `COLUMN_NAME` = {self.dialect.literal(column_name)}"
        )
        return bool(rows)

    def _schema_filter(self, database: str | None) -> str:
        return self.dialect.literal(database) if database else "DATABASE()"

    async def get_table_names(self, database: str | None = None) -> list[str]:
        rows = await self.fetch(
            "SELECT `TABLE_NAME` FROM `INFORMATION_SCHEMA`.`TABLES` "
            f"WHERE `TABLE_SCHEMA` = {self._schema_filter(database)} AND `TABLE_TYPE` = 'BASE TABLE'"
        )
        return [qualified_name(database, row["TABLE_NAME"]) for row in rows]

    async def get_view_names(self, database: str | None = None) -> list[tuple[str, bool]]:
        rows = await self.fetch(
            "SELECT `TABLE_NAME` FROM `INFORMATION_SCHEMA`.`VIEWS` "
            f"WHERE `TABLE_SCHEMA` = {self._schema_filter(database)}"
        )
        return [(qualified_name(database, row["TABLE_NAME"]), False) for row in rows]

    async def has_database(self, name: str) -> bool:
        rows = await self.fetch(
            "SELECT 1 AS `found` FROM `INFORMATION_SCHEMA`.`SCHEMATA` "
            f"WHERE `SCHEMA_NAME` = {self.dialect.literal(name)}"
        )
        return bool(rows)

    async def get_databases(self) -> list[str]:
        rows = await self.fetch("SELECT `SCHEMA_NAME` FROM `INFORMATION_SCHEMA`.`SCHEMATA`")
        return [row["SCHEMA_NAME"] for row in rows]
