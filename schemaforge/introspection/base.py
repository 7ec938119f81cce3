"""Catalog introspection interface and shared row helpers."""

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from schemaforge.config import settings
from schemaforge.errors import UnsupportedOperation
from schemaforge.log import get_logger
from schemaforge.schema import Table, View
from schemaforge.types import DatabaseParamType, RowType

if TYPE_CHECKING:
    from schemaforge.session import ConnectionSession

logger = get_logger(__name__)

# Referential actions every dialect applies when none is given
DEFAULT_REFERENTIAL_ACTIONS = ("NO ACTION", "")

_TYPE_PATTERN = re.compile(r"^\s*([^(]+?)\s*(?:\(\s*([^)]*)\s*\))?\s*(\[\])?\s*$")


def group_rows(
    rows: Iterable[RowType], key: Callable[[RowType], Hashable]
) -> dict[Any, list[RowType]]:
    """Group rows by a key, keeping first-seen order of keys and rows."""
    groups: dict[Any, list[RowType]] = {}
    for row in rows:
        groups.setdefault(key(row), []).append(row)
    return groups


def unique_in_order(values: Iterable[Any]) -> list[Any]:
    seen: set[Any] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def parse_type(definition: str) -> tuple[str, str | None, int | None, int | None]:
    """Split ``varchar(255)`` or ``decimal(10,2)`` into its parts.

    Returns:
        Tuple of type name, length, precision and scale
    """
    match = _TYPE_PATTERN.match(definition or "")
    if not match:
        return (definition or "").lower(), None, None, None
    name, arguments, _ = match.groups()
    name = name.lower()
    if not arguments:
        return name, None, None, None
    parts = [part.strip() for part in arguments.split(",")]
    if len(parts) == 2 and all(part.isdigit() for part in parts):
        return name, None, int(parts[0]), int(parts[1])
    if name in ("decimal", "numeric", "float", "double", "real") and parts[0].isdigit():
        return name, None, int(parts[0]), None
    return name, parts[0], None, None


def parse_enum_values(expression: str) -> tuple[str, ...]:
    """Extract quoted literals from an enum or ``IN (...)`` definition."""
    return tuple(
        value.replace("''", "'")
        for value in re.findall(r"N?'((?:[^']|'')*)'", expression or "")
    )


def normalize_action(action: str | None) -> str | None:
    if action is None or action.upper() in DEFAULT_REFERENTIAL_ACTIONS:
        return None
    return action.upper()


def qualified_name(*segments: str | None) -> str:
    return ".".join(segment for segment in segments if segment)


class Introspector(ABC):
    """Builds table and view models from a live database catalog.

    Implementations issue a fixed number of catalog queries per batch,
    whatever the number of requested tables.
    """

    def __init__(
        self, session: "ConnectionSession", metadata_table: str | None = None
    ) -> None:
        """Initialize introspector.

        Args:
            session: Session used for catalog queries
            metadata_table: Table that records view definitions
        """
        self.session = session
        self.dialect = session.dialect
        self.metadata_table = metadata_table or settings.metadata_table

    async def fetch(self, sql: str, params: DatabaseParamType = None) -> list[RowType]:
        """Run a catalog query and return its rows."""
        result = await self.session.query(sql, params, structured=True)
        return result.records or []

    async def fetch_value(self, sql: str, params: DatabaseParamType = None) -> Any:
        rows = await self.fetch(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    @abstractmethod
    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        """Load the given tables.

        Args:
            names: Qualified table names

        Returns:
            Models of the tables that exist, in catalog order
        """
        pass

    @abstractmethod
    async def has_table(self, name: str) -> bool:
        pass

    @abstractmethod
    async def has_column(self, table_name: str, column_name: str) -> bool:
        pass

    @abstractmethod
    async def get_table_names(self, database: str | None = None) -> list[str]:
        """Names of all user tables in the current database or schema.

        Args:
            database: Database to list instead of the current one, where the
                dialect can address several from one connection
        """
        pass

    async def get_view_names(self, database: str | None = None) -> list[tuple[str, bool]]:
        """Names of all user views, each with its materialized flag."""
        return []

    async def get_enum_type_names(self) -> list[str]:
        """Names of user-defined enum types."""
        return []

    async def has_database(self, name: str) -> bool:
        raise UnsupportedOperation(f"{self.dialect.name} has no databases to check")

    async def has_schema(self, name: str) -> bool:
        raise UnsupportedOperation(f"{self.dialect.name} has no schemas to check")

    async def get_databases(self) -> list[str]:
        return []

    async def get_schemas(self, database: str | None = None) -> list[str]:
        return []

    async def get_current_database(self) -> str | None:
        return await self.fetch_value(self.dialect.current_database_sql())

    async def get_current_schema(self) -> str | None:
        return await self.fetch_value(self.dialect.current_schema_sql())

    async def load_views(self, names: Sequence[str] | None = None) -> list[View]:
        """Load view definitions recorded in the metadata table.

        Args:
            names: Qualified view names, or None for every recorded view

        Returns:
            View models
        """
        if not await self.has_table(self.metadata_table):
            return []
        sql = (
            f"SELECT * FROM {self.dialect.escape_path(self.metadata_table)} "
            f"WHERE {self.dialect.escape('type')} IN ('VIEW', 'MATERIALIZED_VIEW')"
        )
        rows = await self.fetch(sql)
        wanted = set(names) if names is not None else None
        views = []
        for row in rows:
            name = qualified_name(row.get("database"), row.get("schema"), row["name"])
            if wanted is not None and name not in wanted and row["name"] not in wanted:
                continue
            views.append(
                View(
                    name=name,
                    expression=row["value"],
                    materialized=row["type"] == "MATERIALIZED_VIEW",
                )
            )
        return views
