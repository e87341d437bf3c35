"""SQLite adapter."""

import logging
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from easysql.adapters.base import BaseAdapter
from easysql.exceptions import describe_error
from easysql.models.config import SQLITE_POOL, ConnectionConfig, PoolSettings
from easysql.models.table import ColumnInfo, TableInfo

logger = logging.getLogger(__name__)

MEMORY_PATHS = {"", ":memory:"}


class SQLiteAdapter(BaseAdapter):
    """SQLite files through aiosqlite. One logical database, ``main``."""

    names = ("sqlite",)
    drivername = "sqlite+aiosqlite"
    read_keywords = frozenset({"SELECT", "PRAGMA"})
    file_based = True

    def build_url(self, config: ConnectionConfig, host: str, port: int) -> URL:
        path = config.sqlite_path
        return URL.create(self.drivername, database=path or None)

    def pool_settings(self) -> PoolSettings:
        return SQLITE_POOL

    def engine_options(
        self, config: ConnectionConfig, probe: bool = False
    ) -> dict[str, Any]:
        if config.sqlite_path in MEMORY_PATHS:
            # SQLAlchemy pins in-memory databases to a single StaticPool connection
            return {"isolation_level": "AUTOCOMMIT"}
        options = super().engine_options(config, probe)
        options["pool_pre_ping"] = False
        return options

    def quote_identifier(self, name: str) -> str:
        return self._quote_with(name, '"', '"')

    async def list_databases(self, conn: AsyncConnection) -> list[str]:
        return ["main"]

    async def list_tables(
        self, conn: AsyncConnection, database: Optional[str]
    ) -> list[TableInfo]:
        """Row counts are exact: one COUNT(*) per table and view.

        A view whose COUNT fails (say, over a dropped table) is still listed,
        with zero rows.
        """
        result = await conn.execute(
            text(
                "SELECT name, type FROM sqlite_master "
                "WHERE (type = 'table' OR type = 'view') AND name NOT LIKE 'sqlite_%'"
            )
        )

        tables = []
        for name, item_type in result.fetchall():
            try:
                count = await self.count_rows(conn, database, name)
            except DBAPIError as e:
                logger.warning(f"Could not count rows of '{name}': {describe_error(e)}")
                count = 0
            tables.append(TableInfo(name=name, rows=count, is_view=item_type == "view"))
        return tables

    async def list_columns(
        self, conn: AsyncConnection, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        # PRAGMA arguments cannot be bound
        result = await conn.execute(
            text(f"PRAGMA table_info({self.quote_for_text(table)})")
        )
        # cid, name, type, notnull, dflt_value, pk
        return [
            ColumnInfo(
                name=row[1],
                data_type=row[2] or "",
                nullable=not row[3],
                key="PRI" if row[5] else None,
            )
            for row in result.fetchall()
        ]

    async def interrupt(self, conn: AsyncConnection) -> None:
        """Ask SQLite to abort the running statement at its next opcode."""
        raw = conn.sync_connection.connection.driver_connection
        await raw.interrupt()

    async def create_statement(
        self, conn: AsyncConnection, database: Optional[str], table: str
    ) -> Optional[str]:
        result = await conn.execute(
            text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"),
            {"name": table},
        )
        return result.scalar()
