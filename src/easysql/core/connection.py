"""Database connection management with SQLAlchemy."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Sequence, Union

from sqlalchemy import Connection, Engine, create_engine, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from easysql.adapters.base import PROBE_QUERY, BaseAdapter
from easysql.exceptions import DatabaseConnectionError, QueryError, describe_error
from easysql.models.config import ConnectionConfig

logger = logging.getLogger(__name__)

# Raw statements go to the driver untouched; no "%" or ":name" processing
RAW_SQL_OPTIONS = {"no_parameters": True}


class BufferedResult:
    """Fully fetched result of a statement that ran on a worker thread.

    Mirrors the part of ``CursorResult`` the executor and adapters use, so
    callers do not care which kind of connection produced it.
    """

    def __init__(
        self,
        keys: Sequence[str],
        rows: list[Sequence[Any]],
        returns_rows: bool,
        rowcount: int,
    ):
        self._keys = list(keys)
        self._rows = rows
        self.returns_rows = returns_rows
        self.rowcount = rowcount

    @classmethod
    def from_result(cls, result: Any) -> "BufferedResult":
        """Drain a sync ``CursorResult`` while still on the worker thread."""
        if result.returns_rows:
            return cls(list(result.keys()), list(result.fetchall()), True, -1)
        return cls([], [], False, result.rowcount)

    def keys(self) -> list[str]:
        return self._keys

    def fetchall(self) -> list[Sequence[Any]]:
        return self._rows

    def fetchone(self) -> Optional[Sequence[Any]]:
        return self._rows[0] if self._rows else None

    def scalar(self) -> Any:
        row = self.fetchone()
        return row[0] if row else None


class AsyncConnectionWrapper:
    """Wrapper to make sync connections work in async context.

    Every call runs on the wrapper's own worker thread, so calls against the
    connection are serialized even after the awaiting task gave up.
    """

    def __init__(self, sync_conn: Connection):
        """Initialize with a sync connection."""
        self.sync_conn = sync_conn
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="easysql-sync"
        )

    async def _call(self, fn, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def execute(self, statement, parameters=None) -> BufferedResult:
        """Execute a SQLAlchemy statement in the thread pool."""
        if isinstance(statement, str):
            statement = text(statement)

        def run() -> BufferedResult:
            if parameters:
                result = self.sync_conn.execute(statement, parameters)
            else:
                result = self.sync_conn.execute(statement)
            return BufferedResult.from_result(result)

        return await self._call(run)

    async def exec_driver_sql(
        self, statement: str, parameters=None, execution_options=None
    ) -> BufferedResult:
        """Send a raw statement string to the driver in the thread pool."""

        def run() -> BufferedResult:
            result = self.sync_conn.exec_driver_sql(
                statement, parameters, execution_options=execution_options
            )
            return BufferedResult.from_result(result)

        return await self._call(run)

    async def commit(self):
        """Commit transaction in thread pool."""
        await self._call(self.sync_conn.commit)

    async def close(self):
        """Close the sync connection once any running call has finished."""
        try:
            await self._call(self.sync_conn.close)
        finally:
            self._executor.shutdown(wait=False)


ConnectionHandle = Union[AsyncConnection, AsyncConnectionWrapper]


class DatabaseConnection:
    """Owns the SQLAlchemy engine for one session.

    Pooled engines use ``create_async_engine``. Blocking drivers get a sync
    engine with ``NullPool`` and are driven from worker threads, so every
    checkout dials, authenticates and later discards its own connection.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        adapter: BaseAdapter,
        host: str,
        port: int,
        probe: bool = False,
    ):
        """
        Initialize database connection.

        Args:
            config: Connection configuration (credentials, database)
            adapter: Engine adapter for the config's engine kind
            host: Host to dial, already resolved and possibly tunneled
            port: Port to dial
            probe: Use the single-connection probe pool settings
        """
        self.config = config
        self.adapter = adapter
        self.host = host
        self.port = port
        self.probe_only = probe
        self.engine: Optional[AsyncEngine] = None
        self.sync_engine: Optional[Engine] = None

    @property
    def is_sync_only(self) -> bool:
        return self.adapter.sync_only

    @property
    def dialect(self) -> str:
        """Get the engine kind this connection talks to."""
        return self.adapter.name

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self.engine is not None or self.sync_engine is not None

    async def initialize(self) -> None:
        """Create the async or sync engine based on driver requirements."""
        if self.is_initialized:
            return  # Already initialized

        url = self.adapter.build_url(self.config, self.host, self.port)
        options = self.adapter.engine_options(self.config, probe=self.probe_only)
        logger.debug(
            f"Creating {self.dialect} engine for "
            f"{url.render_as_string(hide_password=True)}"
        )

        try:
            if self.is_sync_only:
                self.sync_engine = create_engine(url, **options)
            else:
                self.engine = create_async_engine(url, **options)
        except Exception as e:
            # Missing driver module or options the dialect rejects
            raise DatabaseConnectionError(describe_error(e)) from e

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        if self.sync_engine is not None:
            self.sync_engine.dispose()
            self.sync_engine = None

    @asynccontextmanager
    async def get_connection(
        self, database: Optional[str] = None
    ) -> AsyncGenerator[ConnectionHandle, None]:
        """
        Borrow a connection as an async context manager.

        Args:
            database: Database the statement targets, handed to the
                adapter's ``prepare`` hook

        Yields:
            AsyncConnection or AsyncConnectionWrapper for executing queries

        Raises:
            RuntimeError: If engine not initialized
            DatabaseConnectionError: If dialing outlasted the adapter's dial timeout
        """
        if self.is_sync_only:
            if self.sync_engine is None:
                raise RuntimeError(
                    "DatabaseConnection not initialized. Call initialize() first."
                )

            loop = asyncio.get_running_loop()
            sync_conn = await loop.run_in_executor(None, self.sync_engine.connect)
            wrapper = AsyncConnectionWrapper(sync_conn)
            try:
                await self.adapter.prepare(wrapper, database)
                yield wrapper
            finally:
                await wrapper.close()
        else:
            if self.engine is None:
                raise RuntimeError(
                    "DatabaseConnection not initialized. Call initialize() first."
                )

            conn = self.engine.connect()
            limit = self.adapter.dial_timeout(self.probe_only)
            try:
                await asyncio.wait_for(conn.start(), timeout=limit)
            except asyncio.TimeoutError as e:
                raise DatabaseConnectionError(
                    f"Timed out after {limit:g} s connecting to {self.host}:{self.port}"
                ) from e
            try:
                await self.adapter.prepare(conn, database)
                yield conn
            finally:
                await conn.close()

    async def check(self) -> None:
        """
        Dial and run the probe statement.

        Raises:
            DatabaseConnectionError: If the connection could not be made
            QueryError: If the probe statement failed
        """
        connected = False
        try:
            async with self.get_connection() as conn:
                connected = True
                await conn.execute(text(PROBE_QUERY))
        except Exception as e:
            message = describe_error(e)
            if connected:
                raise QueryError(message) from e
            raise DatabaseConnectionError(message) from e

    @classmethod
    async def probe(
        cls, config: ConnectionConfig, adapter: BaseAdapter, host: str, port: int
    ) -> None:
        """Validate connectivity on a throwaway one-connection engine."""
        connection = cls(config, adapter, host, port, probe=True)
        await connection.initialize()
        try:
            await connection.check()
        finally:
            await connection.dispose()

    @classmethod
    async def open(
        cls, config: ConnectionConfig, adapter: BaseAdapter, host: str, port: int
    ) -> "DatabaseConnection":
        """Create the long-lived engine and validate it with a warm-up connection."""
        connection = cls(config, adapter, host, port)
        await connection.initialize()
        try:
            await connection.check()
        except Exception:
            await connection.dispose()
            raise
        return connection

    async def __aenter__(self) -> "DatabaseConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
