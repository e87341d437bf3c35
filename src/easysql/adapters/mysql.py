"""MySQL / MariaDB adapter."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection

from easysql.adapters.base import BaseAdapter
from easysql.models.config import ConnectionConfig
from easysql.models.table import ColumnInfo, TableInfo


class MySQLAdapter(BaseAdapter):
    """MySQL and MariaDB through aiomysql."""

    names = ("mysql", "mariadb")
    drivername = "mysql+aiomysql"
    default_port = 3306
    connect_timeout_arg = "connect_timeout"
    read_keywords = frozenset({"SELECT", "SHOW", "DESCRIBE", "EXPLAIN"})
    script_prologue = ("SET FOREIGN_KEY_CHECKS = 0;",)
    script_epilogue = ("SET FOREIGN_KEY_CHECKS = 1;",)

    def build_url(self, config: ConnectionConfig, host: str, port: int) -> URL:
        url = super().build_url(config, host, port)
        return url.update_query_dict({"charset": "utf8mb4"})

    def quote_identifier(self, name: str) -> str:
        return self._quote_with(name, "`", "`")

    def qualify(self, database: Optional[str], table: str) -> str:
        # Pooled connections share one default schema, so name it explicitly
        if database:
            return f"{self.quote_identifier(database)}.{self.quote_identifier(table)}"
        return self.quote_identifier(table)

    def _string_literal(self, value: str) -> str:
        # Backslash is an escape character in MySQL string literals
        return super()._string_literal(value.replace("\\", "\\\\"))

    async def list_databases(self, conn: AsyncConnection) -> list[str]:
        result = await conn.execute(text("SHOW DATABASES"))
        return [self._as_text(row[0]) for row in result.fetchall()]

    async def list_tables(
        self, conn: AsyncConnection, database: Optional[str]
    ) -> list[TableInfo]:
        """TABLE_ROWS is InnoDB's estimate and may be stale."""
        query = text("""
            SELECT TABLE_NAME, TABLE_ROWS, TABLE_TYPE
            FROM information_schema.TABLES
            WHERE TABLE_SCHEMA = COALESCE(:database, DATABASE())
            ORDER BY TABLE_TYPE, TABLE_NAME
        """)

        result = await conn.execute(query, {"database": database})
        return [
            TableInfo(
                name=self._as_text(row[0]),
                rows=int(row[1]) if row[1] else 0,
                is_view=self._as_text(row[2]) == "VIEW",
            )
            for row in result.fetchall()
        ]

    async def list_columns(
        self, conn: AsyncConnection, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        query = text("""
            SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_KEY, COLUMN_COMMENT
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = COALESCE(:database, DATABASE())
              AND TABLE_NAME = :table
            ORDER BY ORDINAL_POSITION
        """)

        result = await conn.execute(query, {"database": database, "table": table})
        return [
            ColumnInfo(
                name=self._as_text(row[0]),
                data_type=self._as_text(row[1]),
                nullable=self._as_text(row[2]) == "YES",
                key=self._as_text(row[3]) or None,
                comment=self._as_text(row[4]) or None,
            )
            for row in result.fetchall()
        ]

    async def create_statement(
        self, conn: AsyncConnection, database: Optional[str], table: str
    ) -> Optional[str]:
        result = await conn.execute(
            text(f"SHOW CREATE TABLE {self.qualify_for_text(database, table)}")
        )
        row = result.fetchone()
        return self._as_text(row[1]) if row else None
