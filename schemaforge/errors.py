"""Exceptions raised by sessions and schema operations."""

from typing import Any


class SchemaForgeError(Exception):
    """Base exception for schemaforge errors."""

    pass


class ReleasedSession(SchemaForgeError):
    """Raised when a released session is used."""

    def __init__(self) -> None:
        super().__init__(
            "Session was released. Create a new session to run further queries."
        )


class TransactionAlreadyActive(SchemaForgeError):
    """Raised when a transaction is started while another one is open."""

    def __init__(self) -> None:
        super().__init__("Transaction already started for the given session.")


class TransactionNotActive(SchemaForgeError):
    """Raised on commit or rollback without an open transaction."""

    def __init__(self) -> None:
        super().__init__("Transaction is not started yet, start transaction first.")


class QueryFailed(SchemaForgeError):
    """Raised when the driver rejects a statement.

    Attributes:
        sql: Statement text that failed
        params: Parameters bound to the statement
        cause: Original driver error
    """

    def __init__(self, sql: str, params: Any, cause: BaseException) -> None:
        self.sql = sql
        self.params = params
        self.cause = cause
        super().__init__(f"{cause} [query: {sql}] [params: {params!r}]")


class UnsupportedOperation(SchemaForgeError):
    """Raised when the active dialect cannot express an operation."""

    pass


class NotFound(SchemaForgeError):
    """Raised when a referenced schema object is missing from a table."""

    def __init__(self, kind: str, name: str, table: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.table = table
        message = f'{kind} "{name}" was not found'
        if table is not None:
            message += f' in table "{table}"'
        super().__init__(message)
