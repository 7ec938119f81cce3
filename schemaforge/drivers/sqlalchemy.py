"""Driver for any database reachable through a SQLAlchemy URL."""

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from schemaforge.interfaces import Driver, DriverConnection, DriverResult
from schemaforge.log import get_logger
from schemaforge.types import DatabaseParamType, RowType

logger = get_logger(__name__)

STREAM_PARTITION_SIZE = 100


def _driver_params(params: DatabaseParamType) -> Any:
    # exec_driver_sql takes a tuple for positional parameters
    if isinstance(params, list):
        return tuple(params)
    return params


class SQLAlchemyDriverConnection(DriverConnection):
    """A pooled SQLAlchemy connection in autocommit mode.

    Statements go to the DBAPI cursor unchanged via ``exec_driver_sql``; the
    session issues transaction statements itself.
    """

    def __init__(self, connection: Connection) -> None:
        self._connection: Connection | None = connection

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise RuntimeError("Database not connected")
        return self._connection

    @staticmethod
    def _to_result(query: str, result: CursorResult) -> DriverResult:
        rows = None
        if result.returns_rows:
            rows = [dict(row) for row in result.mappings()]
        rowcount = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else None
        lastrowid = None
        if query.lstrip().upper().startswith("INSERT"):
            lastrowid = result.lastrowid
        return DriverResult(rows=rows, rowcount=rowcount, lastrowid=lastrowid)

    async def execute(self, query: str, params: DatabaseParamType = None) -> DriverResult:
        """Execute a query.

        Args:
            query: SQL query
            params: Query parameters in the DBAPI paramstyle

        Returns:
            Rows and counters reported by the DBAPI cursor
        """
        connection = self._require_connection()
        try:
            if params:
                result = connection.exec_driver_sql(query, _driver_params(params))
            else:
                result = connection.exec_driver_sql(query)
            return self._to_result(query, result)
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise

    async def stream(
        self, query: str, params: DatabaseParamType = None
    ) -> AsyncIterator[RowType]:
        """Yield rows using a server side cursor where the backend has one."""
        connection = self._require_connection()
        try:
            result = connection.exec_driver_sql(
                query,
                _driver_params(params) if params else None,
                execution_options={"stream_results": True},
            )
        except SQLAlchemyError as e:
            logger.error(f"Stream query failed: {e}")
            raise
        try:
            for partition in result.mappings().partitions(STREAM_PARTITION_SIZE):
                for row in partition:
                    yield dict(row)
        finally:
            result.close()

    async def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLAlchemyDriver(Driver):
    """Creates one engine per URL and checks connections out of its pool."""

    def __init__(self, connection_string: str, **kwargs: Any) -> None:
        """Initialize driver.

        Args:
            connection_string: SQLAlchemy database URL
            **kwargs: Passed to ``create_engine``
        """
        super().__init__(connection_string, **kwargs)
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            logger.info(f"Creating database engine for: {self.connection_string}")
            self._engine = create_engine(
                self.connection_string,
                pool_pre_ping=True,
                **self.connection_params,
            )
        return self._engine

    async def acquire(self) -> SQLAlchemyDriverConnection:
        try:
            connection = self.engine.connect().execution_options(
                isolation_level="AUTOCOMMIT"
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to {self.engine.url}: {e}")
            raise
        return SQLAlchemyDriverConnection(connection)

    async def close(self) -> None:
        """Dispose of the engine and its pool."""
        await super().close()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
