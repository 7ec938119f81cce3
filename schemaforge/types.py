"""Common type definitions for the schemaforge system."""

from enum import Enum
from typing import Any, TypeAlias

DatabaseParamType: TypeAlias = dict[str, Any] | list[Any] | tuple[Any, ...] | None
RowType: TypeAlias = dict[str, Any]


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class IsolationLevel(str, Enum):
    """Transaction isolation levels."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class GenerationStrategy(str, Enum):
    """How the database supplies a column value."""

    NONE = "none"
    INCREMENT = "increment"
    UUID = "uuid"


class TransactionState(str, Enum):
    """Session transaction state."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    ENDING = "ending"


class TransactionEvent(str, Enum):
    """Hook points around transaction boundaries."""

    BEFORE_START = "before_start"
    AFTER_START = "after_start"
    BEFORE_COMMIT = "before_commit"
    AFTER_COMMIT = "after_commit"
    BEFORE_ROLLBACK = "before_rollback"
    AFTER_ROLLBACK = "after_rollback"

