"""Database driver interface."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from schemaforge.log import get_logger
from schemaforge.types import DatabaseParamType, RowType

logger = get_logger(__name__)


@dataclass
class DriverResult:
    """Outcome of one statement as reported by a driver.

    Attributes:
        rows: Returned rows, or None when the statement produced no result set
        rowcount: Affected row count, or None when unknown
        lastrowid: Generated id of the last inserted row, when available
    """

    rows: list[RowType] | None = None
    rowcount: int | None = None
    lastrowid: Any = None


class DriverConnection(ABC):
    """One physical connection handed out by a driver."""

    @abstractmethod
    async def execute(
        self,
        query: str,
        params: DatabaseParamType = None,
    ) -> DriverResult:
        """Execute a statement.

        Args:
            query: SQL statement
            params: Statement parameters

        Returns:
            Rows and counters reported by the driver
        """
        pass

    @abstractmethod
    def stream(
        self,
        query: str,
        params: DatabaseParamType = None,
    ) -> AsyncIterator[RowType]:
        """Execute a statement and yield rows as the driver produces them.

        Args:
            query: SQL statement
            params: Statement parameters

        Returns:
            Async iterator over result rows
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection."""
        pass


class Driver(ABC):
    """Acquires and releases connections for one database."""

    def __init__(self, connection_string: str, **kwargs: Any) -> None:
        """Initialize driver.

        Args:
            connection_string: Database URL or path
            **kwargs: Additional connection parameters
        """
        self.connection_string = connection_string
        self.connection_params = kwargs

    @abstractmethod
    async def acquire(self) -> DriverConnection:
        """Obtain a connection.

        Returns:
            Connection ready for statements
        """
        pass

    async def release(self, connection: DriverConnection) -> None:
        """Give a connection back.

        Args:
            connection: Connection obtained from ``acquire``
        """
        await connection.close()

    async def close(self) -> None:
        """Dispose of driver wide resources such as pools."""
        logger.debug(f"Closing driver for {self.connection_string}")

    async def __aenter__(self) -> "Driver":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()
