"""Table exports and whole-database backups written to local files."""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import IO, AsyncIterator, Optional

from easysql.core.executor import QueryExecutor
from easysql.core.registry import ConnectionInfo
from easysql.exceptions import NotConnectedError, QueryError, describe_error
from easysql.models.query import QueryResult

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "sql")
EXPORT_PAGE_SIZE = 1000


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _open_output(path: Path) -> IO[str]:
    path.parent.mkdir(parents=True, exist_ok=True)
    # csv writes its own line endings
    return open(path, "w", encoding="utf-8", newline="")


class TableExporter:
    """Streams table rows page by page into CSV files or SQL scripts.

    Rows are read in natural order through the adapter's page query, so
    memory use stays bounded by the page size whatever the table size.
    """

    def __init__(self, executor: QueryExecutor, page_size: int = EXPORT_PAGE_SIZE):
        self.executor = executor
        self.registry = executor.registry
        self.page_size = page_size

    def _require(self, session_id: str) -> ConnectionInfo:
        info = self.registry.get(session_id)
        if info is None:
            raise NotConnectedError(session_id)
        return info

    async def export_table(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        path: str,
        fmt: str = "csv",
    ) -> int:
        """
        Write every row of a table to a file.

        Args:
            session_id: Registered session id
            database: Database holding the table
            table: Table name
            path: Destination file, replaced if it exists
            fmt: ``csv`` (header row, NULL as an empty field) or ``sql``
                (one INSERT per row)

        Returns:
            Number of rows written

        Raises:
            ValueError: If the format is not supported
            NotConnectedError: If the session id is unknown
            QueryError: If the table could not be read
            OSError: If the file could not be written
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        info = self._require(session_id)
        adapter = info.adapter
        target = Path(path)

        async with info.lease():
            columns = await self._column_names(info, database, table)
            count = 0
            with _open_output(target) as handle:
                if fmt == "csv":
                    writer = csv.writer(handle, lineterminator="\n")
                    writer.writerow(columns)
                    async for page in self._pages(info, database, table):
                        for row in page.rows:
                            writer.writerow(["" if cell is None else cell for cell in row])
                        count += page.row_count
                else:
                    handle.write(f"-- Table: {table}\n")
                    handle.write(f"-- Exported: {_timestamp()}\n\n")
                    async for page in self._pages(info, database, table):
                        for row in page.rows:
                            handle.write(adapter.insert_statement(table, columns, row))
                            handle.write("\n")
                        count += page.row_count

        logger.info(f"Exported {count} row(s) of {table} to {target}")
        return count

    async def backup_database(
        self, session_id: str, database: Optional[str], path: str
    ) -> int:
        """
        Write a SQL script that restores every table of a database.

        Views are skipped. Engines that report table DDL get a DROP and
        CREATE ahead of each table's INSERT statements.

        Returns:
            Number of tables written

        Raises:
            NotConnectedError: If the session id is unknown
            QueryError: If a catalog query or table read failed
            OSError: If the file could not be written
        """
        info = self._require(session_id)
        adapter = info.adapter
        target = Path(path)

        async with info.lease():
            try:
                async with info.connection.get_connection(database) as conn:
                    listed = await adapter.list_tables(conn, database)
            except Exception as e:
                raise QueryError(describe_error(e)) from e
            tables = [item.name for item in listed if not item.is_view]

            with _open_output(target) as handle:
                handle.write(f"-- Database Backup: {database or 'default'}\n")
                handle.write(f"-- Generated: {_timestamp()}\n\n")
                for line in adapter.script_prologue:
                    handle.write(f"{line}\n\n")

                for table in tables:
                    handle.write(f"-- Table: {table}\n")
                    ddl = await self._create_statement(info, database, table)
                    if ddl:
                        handle.write(
                            f"DROP TABLE IF EXISTS {adapter.quote_identifier(table)};\n"
                        )
                        handle.write(f"{ddl};\n\n")

                    columns = await self._column_names(info, database, table)
                    written = 0
                    async for page in self._pages(info, database, table):
                        for row in page.rows:
                            handle.write(adapter.insert_statement(table, columns, row))
                            handle.write("\n")
                        written += page.row_count
                    if written:
                        handle.write("\n")

                for line in adapter.script_epilogue:
                    handle.write(f"{line}\n")

        logger.info(f"Backed up {len(tables)} table(s) to {target}")
        return len(tables)

    async def _column_names(
        self, info: ConnectionInfo, database: Optional[str], table: str
    ) -> list[str]:
        try:
            async with info.connection.get_connection(database) as conn:
                columns = await info.adapter.list_columns(conn, database, table)
        except Exception as e:
            raise QueryError(describe_error(e)) from e
        if not columns:
            raise QueryError(f"Table not found: {table}")
        return [column.name for column in columns]

    async def _create_statement(
        self, info: ConnectionInfo, database: Optional[str], table: str
    ) -> Optional[str]:
        try:
            async with info.connection.get_connection(database) as conn:
                return await info.adapter.create_statement(conn, database, table)
        except Exception as e:
            raise QueryError(describe_error(e)) from e

    async def _pages(
        self, info: ConnectionInfo, database: Optional[str], table: str
    ) -> AsyncIterator[QueryResult]:
        offset = 0
        while True:
            statement = info.adapter.page_query(database, table, offset, self.page_size)
            result = await self.executor.run(info, statement, database=database)
            if not result.ok:
                raise QueryError(result.error or "Read failed")
            yield result
            if result.row_count < self.page_size:
                return
            offset += self.page_size
