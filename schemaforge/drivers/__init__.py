"""Driver implementations."""

from .sqlalchemy import SQLAlchemyDriver, SQLAlchemyDriverConnection
from .sqlite import SQLiteDriver, SQLiteDriverConnection

__all__ = [
    "SQLAlchemyDriver",
    "SQLAlchemyDriverConnection",
    "SQLiteDriver",
    "SQLiteDriverConnection",
]
