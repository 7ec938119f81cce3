"""Reversible schema migrations and per-connection query sessions."""

from .cache import SchemaCache
from .config import Settings, settings
from .dialects import Dialect, QueryResult, get_dialect
from .errors import (
    NotFound,
    QueryFailed,
    ReleasedSession,
    SchemaForgeError,
    TransactionAlreadyActive,
    TransactionNotActive,
    UnsupportedOperation,
)
from .log import (
    QueryLogger,
    get_logger,
    setup_logging,
    setup_test_logging,
)
from .migration import MigrationExecutor, SqlInMemory
from .schema import (
    CheckConstraint,
    Column,
    ExclusionConstraint,
    ForeignKey,
    Index,
    Table,
    UniqueConstraint,
    View,
)
from .session import ConnectionSession
from .statements import Query, Steps
from .types import Environment, GenerationStrategy, IsolationLevel

__all__ = [
    "CheckConstraint",
    "Column",
    "ConnectionSession",
    "Dialect",
    "Environment",
    "ExclusionConstraint",
    "ForeignKey",
    "GenerationStrategy",
    "Index",
    "IsolationLevel",
    "MigrationExecutor",
    "NotFound",
    "Query",
    "QueryFailed",
    "QueryLogger",
    "QueryResult",
    "ReleasedSession",
    "SchemaCache",
    "SchemaForgeError",
    "Settings",
    "SqlInMemory",
    "Steps",
    "Table",
    "TransactionAlreadyActive",
    "TransactionNotActive",
    "UniqueConstraint",
    "UnsupportedOperation",
    "View",
    "get_dialect",
    "get_logger",
    "settings",
    "setup_logging",
    "setup_test_logging",
]
