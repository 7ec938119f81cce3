"""SQLite catalog introspection."""

import re
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
    parse_type,
)

_UNIQUE_PATTERN = re.compile(r'CONSTRAINT "([^"]*)" UNIQUE \((.*?)\)')
_FOREIGN_KEY_PATTERN = re.compile(
    r'CONSTRAINT "([^"]*)" FOREIGN KEY ?\((.*?)\) REFERENCES "([^"]*)"'
)
_CHECK_START_PATTERN = re.compile(r'CONSTRAINT "([^"]*)" CHECK \(')
_WHERE_PATTERN = re.compile(r"\sWHERE\s(.*)$", re.IGNORECASE | re.DOTALL)


def _split_columns(text: str) -> tuple[str, ...]:
    return tuple(part.strip().strip('"') for part in text.split(",") if part.strip())


def _balanced(sql: str, start: int) -> str:
    """Text between the parenthesis before ``start`` and its match."""
    depth = 1
    position = start
    quoted = False
    while position < len(sql):
        char = sql[position]
        if char == "'":
            quoted = not quoted
        elif not quoted and char == "(":
            depth += 1
        elif not quoted and char == ")":
            depth -= 1
            if depth == 0:
                return sql[start:position]
        position += 1
    return sql[start:]


def parse_check_constraints(sql: str) -> list[tuple[str, str]]:
    """Named CHECK constraints declared in a CREATE TABLE statement."""
    return [
        (match.group(1), _balanced(sql, match.end()).strip())
        for match in _CHECK_START_PATTERN.finditer(sql or "")
    ]


def _enum_values(sql: str, column_name: str) -> tuple[str, ...] | None:
    pattern = re.compile(
        rf'"{re.escape(column_name)}" varchar CHECK\( "{re.escape(column_name)}" IN \((.*?)\) \)',
        re.IGNORECASE,
    )
    match = pattern.search(sql or "")
    return parse_enum_values(match.group(1)) if match else None


def _is_autoincrement(sql: str, column_name: str) -> bool:
    pattern = re.compile(
        rf'"{re.escape(column_name)}"[^,]*?PRIMARY KEY AUTOINCREMENT', re.IGNORECASE
    )
    return bool(pattern.search(sql or ""))


def build_sqlite_tables(
    master_rows: Sequence[RowType],
    column_rows: Sequence[RowType],
    index_rows: Sequence[RowType],
    foreign_key_rows: Sequence[RowType],
) -> list[Table]:
    """Build table models from ``sqlite_master`` and pragma rows.

    Args:
        master_rows: ``sqlite_master`` rows of tables and their indices
        column_rows: ``pragma_table_info`` rows with a ``table_name`` column
        index_rows: ``pragma_index_list`` joined with ``pragma_index_info``
        foreign_key_rows: ``pragma_foreign_key_list`` rows with ``table_name``

    Returns:
        Table models in ``master_rows`` order
    """
    columns_by_table = group_rows(column_rows, lambda row: row["table_name"])
    indices_by_table = group_rows(index_rows, lambda row: row["table_name"])
    keys_by_table = group_rows(foreign_key_rows, lambda row: row["table_name"])
    index_sql = {
        row["name"]: row["sql"] for row in master_rows if row["type"] == "index"
    }

    tables = []
    for master in master_rows:
        if master["type"] != "table":
            continue
        name = master["name"]
        sql = master["sql"] or ""
        column_data = sorted(columns_by_table.get(name, []), key=lambda row: row["cid"])

        # sqlite_autoindex_* rows stand for UNIQUE constraints and primary keys
        index_groups = group_rows(indices_by_table.get(name, []), lambda row: row["index_name"])
        declared_uniques = {
            _split_columns(columns): unique_name
            for unique_name, columns in _UNIQUE_PATTERN.findall(sql)
        }
        uniques = []
        indices = []
        for index_name, rows in index_groups.items():
            rows = sorted(rows, key=lambda row: row["seqno"])
            column_names = tuple(row["column_name"] for row in rows)
            origin = rows[0]["origin"]
            if origin == "u":
                uniques.append(
                    UniqueConstraint(
                        column_names=column_names,
                        name=declared_uniques.get(column_names, index_name),
                    )
                )
            elif origin == "c":
                where_match = _WHERE_PATTERN.search(index_sql.get(index_name) or "")
                indices.append(
                    Index(
                        column_names=column_names,
                        name=index_name,
                        is_unique=bool(rows[0]["is_unique"]),
                        where=where_match.group(1).strip() if where_match else None,
                    )
                )

        single_uniques = {unique.column_names[0] for unique in uniques if len(unique.column_names) == 1}
        columns = []
        for row in column_data:
            column_name = row["name"]
            type_name, length, precision, scale = parse_type(row["type"])
            enum = _enum_values(sql, column_name)
            default = row["dflt_value"]
            columns.append(
                Column(
                    name=column_name,
                    type="enum" if enum is not None else type_name,
                    length=length,
                    precision=precision,
                    scale=scale,
                    is_nullable=not row["notnull"],
                    default=None if default in (None, "NULL") else default,
                    generation_strategy=(
                        GenerationStrategy.INCREMENT
                        if _is_autoincrement(sql, column_name)
                        else GenerationStrategy.NONE
                    ),
                    is_primary=row["pk"] > 0,
                    is_unique=column_name in single_uniques,
                    enum=enum,
                )
            )

        declared_keys = [
            (key_name, _split_columns(columns), referenced)
            for key_name, columns, referenced in _FOREIGN_KEY_PATTERN.findall(sql)
        ]
        foreign_keys = []
        for key_id, rows in group_rows(keys_by_table.get(name, []), lambda row: row["id"]).items():
            rows = sorted(rows, key=lambda row: row["seq"])
            column_names = tuple(row["from"] for row in rows)
            referenced_table = rows[0]["table"]
            key_name = next(
                (
                    declared_name
                    for declared_name, declared_columns, declared_table in declared_keys
                    if declared_columns == column_names and declared_table == referenced_table
                ),
                None,
            )
            foreign_keys.append(
                ForeignKey(
                    column_names=column_names,
                    referenced_table_name=referenced_table,
                    referenced_column_names=tuple(row["to"] for row in rows),
                    name=key_name,
                    on_delete=normalize_action(rows[0]["on_delete"]),
                    on_update=normalize_action(rows[0]["on_update"]),
                )
            )
        # pragma_foreign_key_list reports keys last declared first
        foreign_keys.reverse()

        column_names = [column.name for column in columns]
        checks = [
            CheckConstraint(expression=expression, name=check_name).with_referenced_columns(
                column_names
            )
            for check_name, expression in parse_check_constraints(sql)
        ]

        tables.append(
            Table(
                name=name,
                columns=columns,
                indices=indices,
                uniques=uniques,
                checks=checks,
                foreign_keys=foreign_keys,
            )
        )
    return tables


class SQLiteIntrospector(Introspector):
    """Reads ``sqlite_master`` and the table-valued pragma functions."""

    def _in_clause(self, names: Sequence[str]) -> str:
        return ", ".join(self.dialect.literal(self.dialect.table_name_only(name)) for name in names)

    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        if not names:
            return []
        in_clause = self._in_clause(names)
        master_rows = await self.fetch(
            "SELECT \"type\", \"name\", \"tbl_name\", \"sql\" FROM \"sqlite_master\" "
            f"WHERE \"type\" IN ('table', 'index') AND \"tbl_name\" IN ({in_clause})"
        )
        if not any(row["type"] == "table" for row in master_rows):
            return []
        column_rows = await self.fetch(
            "SELECT \"m\".\"name\" AS \"table_name\", \"p\".* FROM \"sqlite_master\" \"m\" "
            "JOIN pragma_table_info(\"m\".\"name\") \"p\" "
            f"WHERE \"m\".\"type\" = 'table' AND \"m\".\"name\" IN ({in_clause})"
        )
        index_rows = await self.fetch(
            "SELECT \"m\".\"name\" AS \"table_name\", \"il\".\"name\" AS \"index_name\", "
            "\"il\".\"unique\" AS \"is_unique\", \"il\".\"origin\" AS \"origin\", "
            "\"ii\".\"seqno\" AS \"seqno\", \"ii\".\"name\" AS \"column_name\" "
            "FROM \"sqlite_master\" \"m\" "
            "JOIN pragma_index_list(\"m\".\"name\") \"il\" "
            "JOIN pragma_index_info(\"il\".\"name\") \"ii\" "
            f"WHERE \"m\".\"type\" = 'table' AND \"m\".\"name\" IN ({in_clause})"
        )
        foreign_key_rows = await self.fetch(
            "SELECT \"m\".\"name\" AS \"table_name\", \"fk\".* FROM \"sqlite_master\" \"m\" "
            "JOIN pragma_foreign_key_list(\"m\".\"name\") \"fk\" "
            f"WHERE \"m\".\"type\" = 'table' AND \"m\".\"name\" IN ({in_clause})"
        )
        return build_sqlite_tables(master_rows, column_rows, index_rows, foreign_key_rows)

    async def has_table(self, name: str) -> bool:
        rows = await self.fetch(
            "SELECT \"name\" FROM \"sqlite_master\" WHERE \"type\" = 'table' AND \"name\" = ?",
            [self.dialect.table_name_only(name)],
        )
        return bool(rows)

    async def has_column(self, table_name: str, column_name: str) -> bool:
        rows = await self.fetch(
            "SELECT \"name\" FROM pragma_table_info(?) WHERE \"name\" = ?",
            [self.dialect.table_name_only(table_name), column_name],
        )
        return bool(rows)

    async def get_table_names(self, database: str | None = None) -> list[str]:
        rows = await self.fetch(
            "SELECT \"name\" FROM \"sqlite_master\" WHERE \"type\" = 'table' "
            "AND \"name\" NOT LIKE 'sqlite_%'"
        )
        return [row["name"] for row in rows]

    async def get_view_names(self, database: str | None = None) -> list[tuple[str, bool]]:
        rows = await self.fetch("SELECT \"name\" FROM \"sqlite_master\" WHERE \"type\" = 'view'")
        return [(row["name"], False) for row in rows]

    async def get_current_database(self) -> str | None:
        return "main"
