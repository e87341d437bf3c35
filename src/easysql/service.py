"""Command surface over the connectivity core.

Every method returns an explicit result object. Core exceptions are turned
into failed :class:`CommandResult` values or error-kind :class:`QueryResult`
values here, so callers only ever inspect results.
"""

import asyncio
import logging
from typing import Any, Optional

from easysql.adapters import BaseAdapter, create_adapter
from easysql.core import (
    ConnectionInfo,
    ConnectionRegistry,
    DatabaseConnection,
    QueryExecutor,
    RowEditor,
    SchemaInspector,
    SSHTunnel,
    TableExporter,
)
from easysql.exceptions import EasySQLError
from easysql.models.config import LOOPBACK_HOST, ConnectionConfig, resolve_host
from easysql.models.query import CommandResult, QueryResult
from easysql.models.table import ColumnInfo, PrimaryKey, TableDataResult, TableInfo
from easysql.storage import ConnectionStore

logger = logging.getLogger(__name__)


class DatabaseService:
    """Test, connect, query and introspect databases by session id."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        store: Optional[ConnectionStore] = None,
        query_timeout: Optional[float] = None,
    ):
        """
        Initialize the service.

        Args:
            registry: Session registry; a fresh one when not given
            store: Persisted connection list; the per-user file when not given
            query_timeout: Default seconds to wait for a query
        """
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.store = store if store is not None else ConnectionStore()
        self.executor = QueryExecutor(self.registry, default_timeout=query_timeout)
        self.inspector = SchemaInspector(self.registry, self.executor)
        self.editor = RowEditor(self.executor)
        self.exporter = TableExporter(self.executor)

    async def _open_endpoint(
        self, config: ConnectionConfig, adapter: BaseAdapter
    ) -> tuple[str, int, Optional[SSHTunnel]]:
        """Host and port to dial, opening an SSH tunnel first when requested."""
        if adapter.file_based:
            return "", 0, None

        port = config.port or adapter.default_port
        settings = config.ssh_settings
        if settings is None:
            return resolve_host(config.host), port, None

        tunnel = await SSHTunnel.open(settings, config.host, port)
        return LOOPBACK_HOST, tunnel.local_port, tunnel

    @staticmethod
    async def _close_tunnel(tunnel: Optional[SSHTunnel]) -> None:
        if tunnel is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, tunnel.close)

    async def test(self, config: ConnectionConfig) -> CommandResult:
        """
        Check that a config can connect, without registering anything.

        Args:
            config: Connection to try

        Returns:
            Success, or failure carrying the error message
        """
        try:
            adapter = create_adapter(config.db_type)
            host, port, tunnel = await self._open_endpoint(config, adapter)
            try:
                await DatabaseConnection.probe(config, adapter, host, port)
            finally:
                await self._close_tunnel(tunnel)
        except EasySQLError as e:
            logger.info(f"Connection test for '{config.id}' failed: {e}")
            return CommandResult.fail(str(e))

        if tunnel is not None:
            return CommandResult.ok("Connection successful (SSH tunnel)")
        return CommandResult.ok("Connection successful")

    async def connect(self, config: ConnectionConfig) -> CommandResult:
        """
        Open a session and register it under ``config.id``.

        An existing session with the same id is replaced.

        Args:
            config: Connection to open

        Returns:
            Success with the session id, or failure carrying the error message
        """
        try:
            adapter = create_adapter(config.db_type)
            host, port, tunnel = await self._open_endpoint(config, adapter)
            try:
                connection = await DatabaseConnection.open(config, adapter, host, port)
            except BaseException:
                await self._close_tunnel(tunnel)
                raise
        except EasySQLError as e:
            logger.info(f"Connecting '{config.id}' failed: {e}")
            return CommandResult.fail(str(e))

        await self.registry.register(
            config.id, ConnectionInfo(connection, config, tunnel)
        )
        logger.info(f"Connected '{config.id}' ({adapter.name})")

        message = "Connected (SSH tunnel)" if tunnel is not None else "Connected"
        return CommandResult.ok(message, session_id=config.id)

    async def disconnect(self, session_id: str) -> CommandResult:
        if await self.registry.remove(session_id):
            logger.info(f"Disconnected '{session_id}'")
            return CommandResult.ok("Disconnected", session_id=session_id)
        return CommandResult.fail("Connection not found")

    def sessions(self) -> list[ConnectionConfig]:
        """Configs of every live session."""
        return [info.config for info in self.registry.sessions()]

    async def query(
        self, session_id: str, sql: str, timeout: Optional[float] = None
    ) -> QueryResult:
        return await self.executor.execute(session_id, sql, timeout=timeout)

    async def list_databases(self, session_id: str) -> list[str]:
        return await self.inspector.list_databases(session_id)

    async def list_tables(
        self, session_id: str, database: Optional[str] = None
    ) -> list[TableInfo]:
        return await self.inspector.list_tables(session_id, database)

    async def list_columns(
        self, session_id: str, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        return await self.inspector.list_columns(session_id, database, table)

    async def get_page(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        page: int = 1,
        page_size: int = 100,
    ) -> TableDataResult:
        return await self.inspector.get_table_page(
            session_id, database, table, page, page_size
        )

    async def update_row(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        primary_key: PrimaryKey,
        updates: dict[str, Any],
    ) -> CommandResult:
        """Update one row by primary key; the message reports the row count."""
        result = await self.editor.update_row(
            session_id, database, table, primary_key, updates
        )
        if not result.ok:
            return CommandResult.fail(result.error or "Update failed")
        return CommandResult.ok(f"Updated, {result.affected_rows} row(s) affected")

    async def delete_row(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        primary_key: PrimaryKey,
    ) -> CommandResult:
        """Delete one row by primary key; the message reports the row count."""
        result = await self.editor.delete_row(session_id, database, table, primary_key)
        if not result.ok:
            return CommandResult.fail(result.error or "Delete failed")
        return CommandResult.ok(f"Deleted, {result.affected_rows} row(s) affected")

    async def export_table(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        path: str,
        fmt: str = "csv",
    ) -> CommandResult:
        """Write a table to ``path`` as CSV or INSERT statements."""
        try:
            count = await self.exporter.export_table(
                session_id, database, table, path, fmt
            )
        except (EasySQLError, OSError, ValueError) as e:
            logger.error(f"Exporting {table} on '{session_id}' failed: {e}")
            return CommandResult.fail(str(e))
        return CommandResult.ok(f"Exported {count} row(s) to {path}")

    async def backup_database(
        self, session_id: str, database: Optional[str], path: str
    ) -> CommandResult:
        """Write a restore script for every table of ``database`` to ``path``."""
        try:
            count = await self.exporter.backup_database(session_id, database, path)
        except (EasySQLError, OSError) as e:
            logger.error(f"Backing up '{session_id}' failed: {e}")
            return CommandResult.fail(str(e))
        return CommandResult.ok(f"Backed up {count} table(s) to {path}")

    def save_connections(self, configs: list[ConnectionConfig]) -> CommandResult:
        try:
            self.store.save(configs)
        except OSError as e:
            logger.error(f"Saving connections to {self.store.path} failed: {e}")
            return CommandResult.fail(str(e))
        return CommandResult.ok(f"Saved {len(configs)} connection(s)")

    def load_connections(self) -> list[ConnectionConfig]:
        """Saved connections; empty when the file is missing or unreadable."""
        try:
            return self.store.load()
        except (OSError, ValueError) as e:
            logger.error(f"Loading connections from {self.store.path} failed: {e}")
            return []

    async def close(self) -> None:
        """Disconnect every session."""
        await self.registry.close_all()
