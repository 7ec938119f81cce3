"""SQL dialects and the dialect registry."""

from typing import Any

from schemaforge.log import get_logger

from .base import Dialect, QueryResult
from .mysql import MySQLDialect
from .postgres import PostgresDialect
from .sqlite import SQLiteDialect
from .sqlserver import SQLServerDialect

logger = get_logger(__name__)

# Global dialect registry, keyed by name and alias
_dialects: dict[str, type[Dialect]] = {}


def register_dialect(dialect_class: type[Dialect]) -> None:
    """Register a dialect under its name and aliases.

    Args:
        dialect_class: Dialect subclass
    """
    for key in (dialect_class.name, *dialect_class.aliases):
        _dialects[key.lower()] = dialect_class
    logger.debug(f"Registered dialect: {dialect_class.name}")


def get_dialect(name: str, **kwargs: Any) -> Dialect:
    """Instantiate a dialect by name or alias.

    Args:
        name: Dialect name, e.g. ``postgres`` or ``mariadb``
        **kwargs: Passed to the dialect constructor

    Returns:
        Dialect instance

    Raises:
        KeyError: If no dialect is registered under ``name``
    """
    key = name.lower()
    if key not in _dialects:
        raise KeyError(f"Dialect not found: {name}")
    return _dialects[key](**kwargs)


def get_supported_dialects() -> list[str]:
    """Get the canonical names of all registered dialects."""
    return sorted({dialect_class.name for dialect_class in _dialects.values()})


for _dialect_class in (PostgresDialect, MySQLDialect, SQLServerDialect, SQLiteDialect):
    register_dialect(_dialect_class)

__all__ = [
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "QueryResult",
    "SQLServerDialect",
    "SQLiteDialect",
    "get_dialect",
    "get_supported_dialects",
    "register_dialect",
]
