"""SQLite driver built on the standard library ``sqlite3`` module."""

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from schemaforge.config import settings
from schemaforge.interfaces import Driver, DriverConnection, DriverResult
from schemaforge.log import get_logger
from schemaforge.types import DatabaseParamType, RowType

logger = get_logger(__name__)

STREAM_BATCH_SIZE = 100


def _database_path(connection_string: str) -> str:
    """Accept a bare path, ``:memory:`` or a ``sqlite:///`` URL."""
    if connection_string.startswith("sqlite:///"):
        return connection_string[len("sqlite:///"):] or ":memory:"
    if connection_string.startswith("sqlite://"):
        return ":memory:"
    return connection_string


class SQLiteDriverConnection(DriverConnection):
    """One ``sqlite3`` connection running in autocommit mode.

    Transactions are opened with explicit ``BEGIN TRANSACTION`` statements by
    the session, so the module's implicit transaction handling is disabled.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        busy_retry_ms: int = 0,
        busy_retry_attempts: int = 5,
    ) -> None:
        """Initialize SQLite connection.

        Args:
            connection: Open ``sqlite3`` connection
            busy_retry_ms: Delay between retries of a locked database, 0 disables
            busy_retry_attempts: Maximum number of retries
        """
        self._connection: sqlite3.Connection | None = connection
        self.busy_retry_ms = busy_retry_ms
        self.busy_retry_attempts = busy_retry_attempts

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._connection is not None

    def _require_connection(self) -> sqlite3.Connection:
        if not self._connection:
            raise RuntimeError("Database not connected")
        return self._connection

    async def _run(self, query: str, params: DatabaseParamType) -> sqlite3.Cursor:
        connection = self._require_connection()
        attempt = 0
        while True:
            try:
                cursor = connection.cursor()
                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)
                return cursor
            except sqlite3.OperationalError as e:
                busy = "locked" in str(e) or "busy" in str(e)
                if not busy or not self.busy_retry_ms or attempt >= self.busy_retry_attempts:
                    raise
                attempt += 1
                logger.warning(
                    f"Database busy, retrying in {self.busy_retry_ms}ms "
                    f"(attempt {attempt}/{self.busy_retry_attempts})"
                )
                await asyncio.sleep(self.busy_retry_ms / 1000)

    async def execute(self, query: str, params: DatabaseParamType = None) -> DriverResult:
        """Execute a query.

        Args:
            query: SQL query
            params: Query parameters

        Returns:
            Rows for statements with a result set, plus change counters
        """
        try:
            cursor = await self._run(query, params)
            rows = None
            if cursor.description is not None:
                rows = [dict(row) for row in cursor.fetchall()]
            rowcount = cursor.rowcount if cursor.rowcount >= 0 else None
            return DriverResult(rows=rows, rowcount=rowcount, lastrowid=cursor.lastrowid)
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {e}")
            raise

    async def stream(
        self, query: str, params: DatabaseParamType = None
    ) -> AsyncIterator[RowType]:
        """Yield rows in batches of ``STREAM_BATCH_SIZE``."""
        try:
            cursor = await self._run(query, params)
        except sqlite3.Error as e:
            logger.error(f"Stream query failed: {e}")
            raise
        try:
            while True:
                batch = cursor.fetchmany(STREAM_BATCH_SIZE)
                if not batch:
                    break
                for row in batch:
                    yield dict(row)
        finally:
            cursor.close()

    async def close(self) -> None:
        """Close SQLite database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("Disconnected from SQLite")


class SQLiteDriver(Driver):
    """Hands out ``sqlite3`` connections for one database file."""

    def __init__(self, connection_string: str = ":memory:", **kwargs: Any) -> None:
        """Initialize SQLite driver.

        Args:
            connection_string: File path, ``:memory:`` or ``sqlite:///`` URL
            **kwargs: ``timeout``, ``busy_retry_ms`` and ``busy_retry_attempts``
        """
        super().__init__(connection_string, **kwargs)
        self.database = _database_path(connection_string)
        self.timeout = kwargs.get("timeout", 60.0)
        self.busy_retry_ms = kwargs.get("busy_retry_ms", settings.busy_retry_ms)
        self.busy_retry_attempts = kwargs.get(
            "busy_retry_attempts", settings.busy_retry_attempts
        )

    async def acquire(self) -> SQLiteDriverConnection:
        """Open a new connection.

        Returns:
            Connection with foreign keys enabled and dict-like rows
        """
        try:
            if self.database != ":memory:":
                Path(self.database).parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(
                self.database,
                check_same_thread=False,
                timeout=self.timeout,
                isolation_level=None,
            )
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            logger.info(f"Connected to SQLite: {self.database}")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to SQLite database: {e}")
            raise
        return SQLiteDriverConnection(
            connection,
            busy_retry_ms=self.busy_retry_ms,
            busy_retry_attempts=self.busy_retry_attempts,
        )

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection settings."""
        connection.execute("PRAGMA foreign_keys = ON")
        if self.database != ":memory:":
            connection.execute("PRAGMA journal_mode = DELETE")
            connection.execute("PRAGMA synchronous = NORMAL")
