"""Statement execution against registered sessions."""

import asyncio
import logging
from typing import Any, Optional, Union

from sqlalchemy.sql.elements import TextClause

from easysql.adapters.base import BaseAdapter
from easysql.core.connection import RAW_SQL_OPTIONS
from easysql.core.registry import ConnectionInfo, ConnectionRegistry
from easysql.exceptions import describe_error
from easysql.models.query import QueryResult
from easysql.utils import coerce_rows

logger = logging.getLogger(__name__)

Statement = Union[str, TextClause]


class QueryExecutor:
    """Runs SQL against a session and decodes the outcome into a QueryResult.

    Raw SQL strings are handed to the driver as-is. Statements the library
    builds itself are ``text()`` clauses with bound parameters.
    """

    def __init__(
        self, registry: ConnectionRegistry, default_timeout: Optional[float] = None
    ):
        """
        Initialize query executor.

        Args:
            registry: Session registry to look ids up in
            default_timeout: Seconds to wait for a statement when the caller
                gives no timeout; None waits indefinitely
        """
        self.registry = registry
        self.default_timeout = default_timeout

    async def execute(
        self, session_id: str, sql: str, timeout: Optional[float] = None
    ) -> QueryResult:
        """
        Execute raw SQL on a session.

        When the timeout expires the caller gets its error result straight
        away. The statement is interrupted where the driver allows it, and
        the connection is returned to the pool once the driver lets go.

        Args:
            session_id: Registered session id
            sql: Statement text, sent to the driver unmodified
            timeout: Seconds to wait before giving up on the statement

        Returns:
            Read, write or error result. Unknown ids give "Not connected".
        """
        info = self.registry.get(session_id)
        if info is None:
            return QueryResult.failure("Not connected")

        limit = timeout if timeout is not None else self.default_timeout
        if not limit:
            async with info.lease():
                return await self.run(info, sql)

        active: list[Any] = []
        task = asyncio.ensure_future(self._leased_run(info, sql, active))
        try:
            done, _ = await asyncio.wait({task}, timeout=limit)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()

        for conn in active:
            try:
                await info.adapter.interrupt(conn)
            except Exception as e:
                logger.warning(f"Could not interrupt statement on '{session_id}': {e}")
        task.cancel()
        task.add_done_callback(_discard_outcome)
        logger.warning(f"Query on '{session_id}' timed out after {limit:g}s")
        return QueryResult.failure(f"Query timed out after {limit:g} s")

    async def _leased_run(
        self, info: ConnectionInfo, sql: str, active: list[Any]
    ) -> QueryResult:
        async with info.lease():
            return await self.run(info, sql, active=active)

    async def run(
        self,
        info: ConnectionInfo,
        statement: Statement,
        params: Optional[dict[str, Any]] = None,
        database: Optional[str] = None,
        active: Optional[list[Any]] = None,
    ) -> QueryResult:
        """Like :meth:`fetch`, but driver errors become an error result."""
        try:
            return await self.fetch(info, statement, params, database, active)
        except Exception as e:
            logger.debug(f"Statement failed on '{info.session_id}': {e}")
            return QueryResult.failure(describe_error(e))

    async def fetch(
        self,
        info: ConnectionInfo,
        statement: Statement,
        params: Optional[dict[str, Any]] = None,
        database: Optional[str] = None,
        active: Optional[list[Any]] = None,
    ) -> QueryResult:
        """
        Execute one statement on a borrowed connection.

        Args:
            info: Session to run on
            statement: Raw SQL string or bound ``text()`` clause
            params: Bind parameters for a ``text()`` clause
            database: Database the statement targets
            active: Receives the borrowed connection while the statement runs

        Returns:
            Read or write result

        Raises:
            Exception: Whatever the driver raised
        """
        adapter = info.adapter

        async with info.connection.get_connection(database) as conn:
            if active is not None:
                active.append(conn)
            if isinstance(statement, str):
                result = await conn.exec_driver_sql(
                    statement, execution_options=RAW_SQL_OPTIONS
                )
                reading = self._is_read(adapter, statement, result)
            else:
                result = await conn.execute(statement, params or {})
                reading = result.returns_rows

            if reading:
                return self._read_result(result)

            await conn.commit()
            # Drivers report -1 when the count is unknown
            return QueryResult.write(max(result.rowcount or 0, 0))

    @staticmethod
    def _is_read(adapter: BaseAdapter, sql: str, result: Any) -> bool:
        if adapter.classify_by_result:
            return bool(result.returns_rows)
        return adapter.is_read_statement(sql)

    @staticmethod
    def _read_result(result: Any) -> QueryResult:
        if not result.returns_rows:
            return QueryResult.read([], [])

        rows = result.fetchall()
        if not rows:
            return QueryResult.read([], [])

        columns = [str(key) for key in result.keys()]
        return QueryResult.read(columns, coerce_rows(rows))


def _discard_outcome(task: "asyncio.Future[Any]") -> None:
    # Collect the abandoned statement's outcome so it is never reported as lost
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned statement finished with: {error}")
