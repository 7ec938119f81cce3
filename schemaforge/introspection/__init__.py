"""Catalog introspectors and the per-dialect introspector registry."""

from typing import TYPE_CHECKING

from schemaforge.log import get_logger

from .base import Introspector
from .mysql import MySQLIntrospector, build_mysql_tables
from .postgres import PostgresIntrospector, build_postgres_tables
from .sqlite import SQLiteIntrospector, build_sqlite_tables
from .sqlserver import SQLServerIntrospector, build_sqlserver_tables

if TYPE_CHECKING:
    from schemaforge.session import ConnectionSession

logger = get_logger(__name__)

# Global introspector registry, keyed by canonical dialect name
_introspectors: dict[str, type[Introspector]] = {}


def register_introspector(dialect_name: str, introspector_class: type[Introspector]) -> None:
    """Register the introspector used for a dialect.

    Args:
        dialect_name: Canonical dialect name
        introspector_class: Introspector subclass
    """
    _introspectors[dialect_name] = introspector_class
    logger.debug(f"Registered introspector for dialect: {dialect_name}")


def get_introspector(
    session: "ConnectionSession", metadata_table: str | None = None
) -> Introspector:
    """Create the introspector matching a session's dialect.

    Args:
        session: Session used for catalog queries
        metadata_table: Table that records view definitions

    Returns:
        Introspector instance

    Raises:
        KeyError: If no introspector is registered for the dialect
    """
    name = session.dialect.name
    if name not in _introspectors:
        raise KeyError(f"Introspector not found: {name}")
    return _introspectors[name](session, metadata_table)


register_introspector("postgres", PostgresIntrospector)
register_introspector("mysql", MySQLIntrospector)
register_introspector("mssql", SQLServerIntrospector)
register_introspector("sqlite", SQLiteIntrospector)

__all__ = [
    "Introspector",
    "MySQLIntrospector",
    "PostgresIntrospector",
    "SQLServerIntrospector",
    "SQLiteIntrospector",
    "build_mysql_tables",
    "build_postgres_tables",
    "build_sqlite_tables",
    "build_sqlserver_tables",
    "get_introspector",
    "register_introspector",
]
