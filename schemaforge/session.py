"""Per-connection query execution and transaction state."""

import asyncio
import inspect
import time
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from schemaforge.config import settings
from schemaforge.dialects import Dialect, QueryResult
from schemaforge.errors import (
    QueryFailed,
    ReleasedSession,
    TransactionAlreadyActive,
    TransactionNotActive,
)
from schemaforge.interfaces import Driver, DriverConnection
from schemaforge.log import QueryLogger, get_logger
from schemaforge.types import (
    DatabaseParamType,
    IsolationLevel,
    RowType,
    TransactionEvent,
    TransactionState,
)

logger = get_logger(__name__)

TransactionHook = Callable[[], Awaitable[None] | None]


@dataclass(eq=False)
class AdmissionSlot:
    """Place of one statement in the admission queue."""

    barrier: bool = False
    future: asyncio.Future[None] = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )


class AdmissionQueue:
    """FIFO of statements outstanding on one connection.

    In ordered mode every statement waits for all statements queued before it.
    Otherwise only barrier statements (transaction boundaries) wait for
    everything ahead, and ordinary statements wait only for barriers ahead.
    A failing statement still completes its slot, so it never cancels or
    reorders the statements queued behind it.
    """

    def __init__(self, ordered: bool) -> None:
        self.ordered = ordered
        self._slots: deque[AdmissionSlot] = deque()

    def __len__(self) -> int:
        return len(self._slots)

    async def enter(self, barrier: bool = False) -> AdmissionSlot:
        """Queue a statement and wait until it may run.

        Args:
            barrier: Wait for every statement ahead, whatever the mode

        Returns:
            The slot to pass to ``leave`` once the statement finished
        """
        if self.ordered or barrier:
            ahead = [slot.future for slot in self._slots]
        else:
            ahead = [slot.future for slot in self._slots if slot.barrier]
        slot = AdmissionSlot(barrier=barrier)
        self._slots.append(slot)
        if ahead:
            try:
                # wait() rather than gather(): a cancelled waiter must not
                # cancel the statements it is waiting for
                await asyncio.wait(ahead)
            except BaseException:
                self.leave(slot)
                raise
        return slot

    def leave(self, slot: AdmissionSlot) -> None:
        """Remove a slot and unblock the statements waiting on it."""
        if slot in self._slots:
            self._slots.remove(slot)
        if not slot.future.done():
            slot.future.set_result(None)

    @asynccontextmanager
    async def admit(self, barrier: bool = False) -> AsyncIterator[AdmissionSlot]:
        slot = await self.enter(barrier)
        try:
            yield slot
        finally:
            self.leave(slot)


class QueryStream:
    """Rows of a streamed statement, read as they arrive.

    The stream keeps its admission slot until it is exhausted, fails or is
    closed, so later statements on the session wait for it.
    """

    def __init__(
        self,
        session: "ConnectionSession",
        sql: str,
        params: DatabaseParamType,
        rows: AsyncIterator[RowType],
        slot: AdmissionSlot,
        on_end: Callable[[], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
    ) -> None:
        self.session = session
        self.sql = sql
        self.params = params
        self._rows = rows
        self._slot = slot
        self._on_end = on_end
        self._on_error = on_error
        self._closed = False
        self._error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "QueryStream":
        return self

    async def __anext__(self) -> RowType:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._rows.__anext__()
        except StopAsyncIteration:
            await self._finish()
            if self._on_end:
                self._on_end()
            raise
        except Exception as e:
            await self._finish()
            self.session.query_logger.log_query_error(e, self.sql, self.params, self.session)
            error = QueryFailed(self.sql, self.params, e)
            self._error = error
            if self._on_error:
                self._on_error(error)
            raise error from e

    async def close(self, error: BaseException | None = None) -> None:
        """Stop reading; later reads raise ``error`` when one is given."""
        if self._closed:
            return
        self._error = error
        await self._finish()
        if error is not None and self._on_error:
            self._on_error(error)

    async def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._rows, "aclose", None)
        if aclose is not None:
            await aclose()
        self.session._queue.leave(self._slot)
        self.session._streams.discard(self)

    async def __aenter__(self) -> "QueryStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class ConnectionSession:
    """Query and transaction surface bound to one physical connection.

    Example:
        >>> session = ConnectionSession(SQLiteDriver(":memory:"), SQLiteDialect())
        >>> async with session.transaction():
        ...     await session.query("INSERT INTO t (id) VALUES (?)", [1])
        >>> await session.release()
    """

    def __init__(
        self,
        driver: Driver,
        dialect: Dialect,
        query_logger: QueryLogger | None = None,
        max_query_execution_time_ms: int | None = None,
    ) -> None:
        """Initialize session.

        Args:
            driver: Driver that hands out the connection
            dialect: Dialect of the connected database
            query_logger: Sink for query events
            max_query_execution_time_ms: Slow query threshold, 0 disables it
        """
        self.driver = driver
        self.dialect = dialect
        self.query_logger = query_logger or QueryLogger(enabled=settings.log_queries)
        if max_query_execution_time_ms is None:
            max_query_execution_time_ms = settings.max_query_execution_time_ms
        self.max_query_execution_time_ms = max_query_execution_time_ms

        self.is_released = False
        self.transaction_state = TransactionState.IDLE
        self._connection: DriverConnection | None = None
        self._connect_task: asyncio.Future[DriverConnection] | None = None
        self._queue = AdmissionQueue(ordered=dialect.requires_query_ordering)
        self._hooks: dict[TransactionEvent, list[TransactionHook]] = {
            event: [] for event in TransactionEvent
        }
        self._streams: set[QueryStream] = set()

    @property
    def is_transaction_active(self) -> bool:
        # A transaction being committed or rolled back is still open
        return self.transaction_state in (TransactionState.ACTIVE, TransactionState.ENDING)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> DriverConnection:
        """Acquire the connection, sharing one attempt between concurrent callers.

        Returns:
            The session connection

        Raises:
            ReleasedSession: If the session was released
        """
        if self.is_released:
            raise ReleasedSession()
        if self._connection is not None:
            return self._connection

        if self._connect_task is None:
            self._connect_task = asyncio.ensure_future(self.driver.acquire())
        task = self._connect_task
        try:
            connection = await asyncio.shield(task)
        except Exception:
            # A failed attempt is not memoized; the next call retries
            if self._connect_task is task:
                self._connect_task = None
            raise

        if self.is_released:
            raise ReleasedSession()
        if self._connection is None:
            self._connection = connection
        return self._connection

    async def release(self) -> None:
        """Mark the session dead and hand the connection back to the driver.

        Open streams are closed with ``ReleasedSession``. Calling this more
        than once has no further effect.
        """
        if self.is_released:
            return
        self.is_released = True

        for stream in list(self._streams):
            await stream.close(ReleasedSession())

        connection = self._connection
        task = self._connect_task
        if connection is None and task is not None:
            await asyncio.wait([task])
            if not task.cancelled() and task.exception() is None:
                connection = task.result()
        self._connection = None
        self._connect_task = None

        if connection is not None:
            await self.driver.release(connection)
        logger.debug("Session released")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def on(self, event: TransactionEvent, hook: TransactionHook) -> None:
        """Register a callback for a transaction event.

        Args:
            event: Event to listen for
            hook: Plain or async callable without arguments
        """
        self._hooks[TransactionEvent(event)].append(hook)

    async def _run_hooks(self, event: TransactionEvent) -> None:
        for hook in self._hooks[event]:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def start_transaction(
        self, isolation_level: IsolationLevel | str | None = None
    ) -> None:
        """Open a transaction.

        Args:
            isolation_level: Optional isolation level

        Raises:
            ReleasedSession: If the session was released
            TransactionAlreadyActive: If a transaction is already open
            UnsupportedOperation: If the dialect rejects the isolation level
        """
        if self.is_released:
            raise ReleasedSession()
        if self.transaction_state != TransactionState.IDLE:
            raise TransactionAlreadyActive()
        level = IsolationLevel(isolation_level) if isolation_level else None
        statements = self.dialect.begin_statements(level)

        # Claimed before the first await so a concurrent start sees it
        self.transaction_state = TransactionState.STARTING
        try:
            await self._run_hooks(TransactionEvent.BEFORE_START)
            for statement in statements:
                await self._execute(statement, barrier=True)
        except BaseException:
            self.transaction_state = TransactionState.IDLE
            raise
        self.transaction_state = TransactionState.ACTIVE
        await self._run_hooks(TransactionEvent.AFTER_START)

    async def commit_transaction(self) -> None:
        """Commit the open transaction.

        Raises:
            TransactionNotActive: If no transaction is open
        """
        await self._end_transaction(
            TransactionEvent.BEFORE_COMMIT,
            self.dialect.commit_statement(),
            TransactionEvent.AFTER_COMMIT,
        )

    async def rollback_transaction(self) -> None:
        """Roll back the open transaction.

        Raises:
            TransactionNotActive: If no transaction is open
        """
        await self._end_transaction(
            TransactionEvent.BEFORE_ROLLBACK,
            self.dialect.rollback_statement(),
            TransactionEvent.AFTER_ROLLBACK,
        )

    async def _end_transaction(
        self, before: TransactionEvent, statement: str, after: TransactionEvent
    ) -> None:
        if self.is_released:
            raise ReleasedSession()
        if self.transaction_state != TransactionState.ACTIVE:
            raise TransactionNotActive()
        self.transaction_state = TransactionState.ENDING
        try:
            await self._run_hooks(before)
            await self._execute(statement, barrier=True)
        except BaseException:
            # The transaction is still open when the statement did not go through
            self.transaction_state = TransactionState.ACTIVE
            raise
        self.transaction_state = TransactionState.IDLE
        await self._run_hooks(after)

    @asynccontextmanager
    async def transaction(
        self, isolation_level: IsolationLevel | str | None = None
    ) -> AsyncIterator["ConnectionSession"]:
        """Run a block inside a transaction, rolling back if it raises."""
        await self.start_transaction(isolation_level)
        try:
            yield self
        except Exception:
            await self.rollback_transaction()
            raise
        await self.commit_transaction()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(
        self,
        sql: str,
        params: DatabaseParamType = None,
        structured: bool = False,
    ) -> Any:
        """Execute a statement.

        Args:
            sql: SQL statement
            params: Statement parameters
            structured: Return a ``QueryResult`` instead of the raw payload

        Returns:
            Dialect shaped raw payload, or a ``QueryResult``

        Raises:
            ReleasedSession: If the session was released
            QueryFailed: If the driver rejected the statement
        """
        result = await self._execute(sql, params)
        return result if structured else result.raw

    async def _execute(
        self,
        sql: str,
        params: DatabaseParamType = None,
        barrier: bool = False,
    ) -> QueryResult:
        if self.is_released:
            raise ReleasedSession()
        async with self._queue.admit(barrier):
            connection = await self.connect()
            self.query_logger.log_query(sql, params, self)
            started = time.perf_counter()
            try:
                driver_result = await connection.execute(sql, params)
            except Exception as e:
                self.query_logger.log_query_error(e, sql, params, self)
                raise QueryFailed(sql, params, e) from e
            duration_ms = (time.perf_counter() - started) * 1000
            threshold = self.max_query_execution_time_ms
            if threshold and duration_ms > threshold:
                self.query_logger.log_query_slow(duration_ms, sql, params, self)
        return self.dialect.normalize_result(sql, driver_result)

    async def stream(
        self,
        sql: str,
        params: DatabaseParamType = None,
        on_end: Callable[[], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
    ) -> QueryStream:
        """Execute a statement and return a live row stream.

        Args:
            sql: SQL statement
            params: Statement parameters
            on_end: Called once all rows were read
            on_error: Called with the error that ended the stream

        Returns:
            Async iterator over rows
        """
        if self.is_released:
            raise ReleasedSession()
        slot = await self._queue.enter()
        try:
            connection = await self.connect()
            self.query_logger.log_query(sql, params, self)
            rows = connection.stream(sql, params)
        except BaseException:
            self._queue.leave(slot)
            raise
        stream = QueryStream(self, sql, params, rows, slot, on_end, on_error)
        self._streams.add(stream)
        return stream

    async def __aenter__(self) -> "ConnectionSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.release()


__all__ = [
    "AdmissionQueue",
    "AdmissionSlot",
    "ConnectionSession",
    "QueryResult",
    "QueryStream",
]
