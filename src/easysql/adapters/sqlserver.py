"""SQL Server adapter."""

from typing import Any, Optional, TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.pool import NullPool

from easysql.adapters.base import BaseAdapter
from easysql.models.config import ConnectionConfig
from easysql.models.table import ColumnInfo, TableInfo

if TYPE_CHECKING:
    from easysql.core.connection import AsyncConnectionWrapper


class SQLServerAdapter(BaseAdapter):
    """SQL Server through pymssql.

    There is no pool: every operation dials a fresh connection, logs in,
    runs and disconnects. Work runs on worker threads because pymssql
    blocks.
    """

    names = ("sqlserver", "mssql")
    drivername = "mssql+pymssql"
    default_port = 1433
    classify_by_result = True
    sync_only = True
    connect_timeout_arg = "login_timeout"

    def engine_options(
        self, config: ConnectionConfig, probe: bool = False
    ) -> dict[str, Any]:
        return {
            "poolclass": NullPool,
            "isolation_level": "AUTOCOMMIT",
            "connect_args": self.connect_args(self.pool_for(probe)),
        }

    def quote_identifier(self, name: str) -> str:
        return self._quote_with(name, "[", "]")

    def render_literal(self, value: Any) -> str:
        # No boolean literals in T-SQL; BIT columns take 1 and 0
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().render_literal(value)

    def _string_literal(self, value: str) -> str:
        return "N" + super()._string_literal(value)

    async def prepare(
        self, conn: "AsyncConnectionWrapper", database: Optional[str]
    ) -> None:
        if database:
            await conn.execute(text(f"USE {self.quote_for_text(database)}"))

    def page_query(
        self, database: Optional[str], table: str, offset: int, limit: int
    ) -> str:
        """OFFSET/FETCH needs an ORDER BY; ``(SELECT NULL)`` keeps natural order."""
        return (
            f"SELECT * FROM {self.qualify(database, table)} "
            f"ORDER BY (SELECT NULL) "
            f"OFFSET {int(offset)} ROWS FETCH NEXT {int(limit)} ROWS ONLY"
        )

    async def list_databases(self, conn: "AsyncConnectionWrapper") -> list[str]:
        # database_id 1-4 are master, tempdb, model and msdb
        result = await conn.execute(
            text("SELECT name FROM sys.databases WHERE database_id > 4 ORDER BY name")
        )
        return [row[0] for row in result.fetchall()]

    async def list_tables(
        self, conn: "AsyncConnectionWrapper", database: Optional[str]
    ) -> list[TableInfo]:
        query = text("""
            SELECT t.name, SUM(p.rows) AS row_estimate, 0 AS is_view
            FROM sys.tables t
            LEFT JOIN sys.partitions p
              ON t.object_id = p.object_id AND p.index_id IN (0, 1)
            GROUP BY t.name
            UNION ALL
            SELECT name, 0 AS row_estimate, 1 AS is_view FROM sys.views
            ORDER BY is_view, name
        """)

        result = await conn.execute(query)
        return [
            TableInfo(name=row[0], rows=int(row[1] or 0), is_view=row[2] == 1)
            for row in result.fetchall()
        ]

    async def list_columns(
        self, conn: "AsyncConnectionWrapper", database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        query = text("""
            SELECT
                c.name,
                t.name AS type_name,
                c.is_nullable,
                CASE WHEN EXISTS (
                    SELECT 1
                    FROM sys.index_columns ic
                    JOIN sys.indexes i
                      ON i.object_id = ic.object_id AND i.index_id = ic.index_id
                    WHERE i.is_primary_key = 1
                      AND ic.object_id = c.object_id
                      AND ic.column_id = c.column_id
                ) THEN 'PRI' END AS column_key
            FROM sys.columns c
            JOIN sys.types t ON c.user_type_id = t.user_type_id
            WHERE c.object_id = OBJECT_ID(QUOTENAME(:table))
            ORDER BY c.column_id
        """)

        result = await conn.execute(query, {"table": table})
        return [
            ColumnInfo(
                name=row[0],
                data_type=row[1],
                nullable=bool(row[2]),
                key=row[3],
            )
            for row in result.fetchall()
        ]
