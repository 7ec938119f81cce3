"""Global pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncIterator, Callable
from logging import Logger
from typing import Any

import pytest
import pytest_asyncio

from schemaforge import setup_test_logging
from schemaforge.dialects import get_dialect
from schemaforge.drivers import SQLiteDriver
from schemaforge.interfaces import Driver, DriverConnection, DriverResult
from schemaforge.session import ConnectionSession
from schemaforge.types import DatabaseParamType, RowType


class RecordingConnection(DriverConnection):
    """Connection that records every statement and answers from canned rules."""

    def __init__(self, driver: "RecordingDriver") -> None:
        self.driver = driver
        self.closed = False

    async def execute(self, query: str, params: DatabaseParamType = None) -> DriverResult:
        self.driver.executed.append(query)
        self.driver.parameters.append(params)
        for fragment, seconds in self.driver.delays.items():
            if fragment in query:
                await asyncio.sleep(seconds)
        try:
            return self.driver.answer(query)
        finally:
            self.driver.finished.append(query)

    async def stream(
        self, query: str, params: DatabaseParamType = None
    ) -> AsyncIterator[RowType]:
        self.driver.executed.append(query)
        for row in self.driver.answer(query).rows or []:
            yield row

    async def close(self) -> None:
        self.closed = True


class RecordingDriver(Driver):
    """Driver whose connections never reach a database.

    Statements containing a registered fragment get the registered outcome:
    a row list, a ``DriverResult`` or an exception to raise. Anything else
    gets an empty result.
    """

    def __init__(self) -> None:
        super().__init__("recording://")
        self.executed: list[str] = []
        self.finished: list[str] = []
        self.parameters: list[DatabaseParamType] = []
        self.rules: list[tuple[str, Any]] = []
        self.delays: dict[str, float] = {}
        self.acquire_count = 0
        self.released: list[DriverConnection] = []

    def respond(self, fragment: str, outcome: Any) -> None:
        self.rules.append((fragment, outcome))

    def delay(self, fragment: str, seconds: float) -> None:
        self.delays[fragment] = seconds

    def answer(self, query: str) -> DriverResult:
        for fragment, outcome in self.rules:
            if fragment not in query:
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if isinstance(outcome, list):
                return DriverResult(rows=outcome, rowcount=len(outcome))
            return outcome
        return DriverResult()

    async def acquire(self) -> RecordingConnection:
        self.acquire_count += 1
        await asyncio.sleep(0)
        return RecordingConnection(self)

    async def release(self, connection: DriverConnection) -> None:
        self.released.append(connection)
        await super().release(connection)


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Setup test logging for all tests."""
    setup_test_logging()


@pytest.fixture(scope="function")
def logger() -> Logger:
    """Provide a logger instance for tests."""
    from schemaforge import get_logger

    return get_logger("test")


@pytest.fixture
def recording_driver() -> RecordingDriver:
    """Create a driver that records statements instead of running them."""
    return RecordingDriver()


@pytest.fixture
def make_session(
    recording_driver: RecordingDriver,
) -> Callable[..., ConnectionSession]:
    """Create sessions for any dialect on top of the recording driver."""

    def factory(dialect_name: str, **kwargs: Any) -> ConnectionSession:
        return ConnectionSession(recording_driver, get_dialect(dialect_name), **kwargs)

    return factory


@pytest_asyncio.fixture
async def sqlite_session() -> AsyncIterator[ConnectionSession]:
    """Create a session on a fresh in-memory SQLite database."""
    session = ConnectionSession(SQLiteDriver(":memory:"), get_dialect("sqlite"))
    yield session
    await session.release()
