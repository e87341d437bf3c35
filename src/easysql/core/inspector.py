"""Schema introspection over registered sessions."""

import logging
from typing import Optional

from easysql.core.executor import QueryExecutor
from easysql.core.registry import ConnectionRegistry
from easysql.exceptions import describe_error
from easysql.models.table import ColumnInfo, TableDataResult, TableInfo

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class SchemaInspector:
    """Lists databases, tables and columns and reads pages of table rows.

    Catalog SQL lives in the adapters. Unknown session ids and catalog
    failures give empty results rather than exceptions.
    """

    def __init__(self, registry: ConnectionRegistry, executor: QueryExecutor):
        """
        Initialize schema inspector.

        Args:
            registry: Session registry to look ids up in
            executor: Executor used to fetch and decode table pages
        """
        self.registry = registry
        self.executor = executor

    async def list_databases(self, session_id: str) -> list[str]:
        """
        Get list of databases visible to the session.

        Args:
            session_id: Registered session id

        Returns:
            Database names, empty for unknown ids
        """
        info = self.registry.get(session_id)
        if info is None:
            return []

        async with info.lease():
            try:
                async with info.connection.get_connection() as conn:
                    return await info.adapter.list_databases(conn)
            except Exception as e:
                logger.error(f"Listing databases on '{session_id}' failed: {e}")
                return []

    async def list_tables(
        self, session_id: str, database: Optional[str] = None
    ) -> list[TableInfo]:
        """
        Get tables and views in a database with row counts.

        Args:
            session_id: Registered session id
            database: Database to list (session default if None)

        Returns:
            Table information, empty for unknown ids
        """
        info = self.registry.get(session_id)
        if info is None:
            return []

        async with info.lease():
            try:
                async with info.connection.get_connection(database) as conn:
                    return await info.adapter.list_tables(conn, database)
            except Exception as e:
                logger.error(f"Listing tables on '{session_id}' failed: {e}")
                return []

    async def list_columns(
        self, session_id: str, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        info = self.registry.get(session_id)
        if info is None:
            return []

        async with info.lease():
            try:
                async with info.connection.get_connection(database) as conn:
                    return await info.adapter.list_columns(conn, database, table)
            except Exception as e:
                logger.error(
                    f"Describing {table} on '{session_id}' failed: {e}"
                )
                return []

    async def get_table_page(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> TableDataResult:
        """
        Read one page of rows in natural order.

        Args:
            session_id: Registered session id
            database: Database holding the table
            table: Table name
            page: 1-based page number; values below 1 read the first page
            page_size: Rows per page; values below 1 use the default

        Returns:
            Columns, rows, exact total and the effective paging values
        """
        page = max(page, 1)
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE

        info = self.registry.get(session_id)
        if info is None:
            return TableDataResult(page=page, page_size=page_size)

        adapter = info.adapter
        async with info.lease():
            try:
                async with info.connection.get_connection(database) as conn:
                    columns = await adapter.list_columns(conn, database, table)
                    total = await adapter.count_rows(conn, database, table)
            except Exception as e:
                logger.error(f"Counting rows of {table} on '{session_id}' failed: {e}")
                return TableDataResult(
                    page=page, page_size=page_size, error=describe_error(e)
                )

            offset = (page - 1) * page_size
            statement = adapter.page_query(database, table, offset, page_size)
            result = await self.executor.run(info, statement, database=database)

        if not result.ok:
            logger.error(f"Reading {table} on '{session_id}' failed: {result.error}")

        return TableDataResult(
            columns=columns,
            rows=result.rows,
            total=total,
            page=page,
            page_size=page_size,
            error=result.error,
        )
