"""PostgreSQL adapter."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from easysql.adapters.base import BaseAdapter
from easysql.models.config import ConnectionConfig
from easysql.models.table import ColumnInfo, TableInfo


class PostgresAdapter(BaseAdapter):
    """PostgreSQL through asyncpg.

    A session is bound to the database it connected to, so catalog queries
    look at the ``public`` schema of that database whatever database name
    the caller passes.
    """

    names = ("postgres", "postgresql")
    drivername = "postgresql+asyncpg"
    default_port = 5432
    connect_timeout_arg = "timeout"
    read_keywords = frozenset({"SELECT", "SHOW", "EXPLAIN"})

    def default_database(self, config: ConnectionConfig) -> Optional[str]:
        return config.database or "postgres"

    def quote_identifier(self, name: str) -> str:
        return self._quote_with(name, '"', '"')

    async def list_databases(self, conn: AsyncConnection) -> list[str]:
        result = await conn.execute(
            text(
                "SELECT datname FROM pg_database "
                "WHERE datistemplate = false ORDER BY datname"
            )
        )
        return [row[0] for row in result.fetchall()]

    async def list_tables(
        self, conn: AsyncConnection, database: Optional[str]
    ) -> list[TableInfo]:
        """Tables carry the planner's reltuples estimate; views report 0 rows."""
        tables_query = text("""
            SELECT
                t.tablename,
                (
                    SELECT c.reltuples::bigint
                    FROM pg_class c
                    WHERE c.oid = to_regclass(
                        quote_ident(t.schemaname) || '.' || quote_ident(t.tablename)
                    )
                ) AS estimate
            FROM pg_tables t
            WHERE t.schemaname = 'public'
            ORDER BY t.tablename
        """)

        result = await conn.execute(tables_query)
        # reltuples is -1 for tables that were never analyzed
        tables = [
            TableInfo(name=row[0], rows=max(int(row[1] or 0), 0), is_view=False)
            for row in result.fetchall()
        ]

        views_query = text(
            "SELECT viewname FROM pg_views "
            "WHERE schemaname = 'public' ORDER BY viewname"
        )
        views = await conn.execute(views_query)
        tables.extend(
            TableInfo(name=row[0], rows=0, is_view=True) for row in views.fetchall()
        )
        return tables

    async def list_columns(
        self, conn: AsyncConnection, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        query = text("""
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                CASE WHEN pk.column_name IS NOT NULL THEN 'PRI' END AS column_key
            FROM information_schema.columns c
            LEFT JOIN (
                SELECT kcu.column_name
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                  ON tc.constraint_name = kcu.constraint_name
                 AND tc.table_schema = kcu.table_schema
                 AND tc.table_name = kcu.table_name
                WHERE tc.constraint_type = 'PRIMARY KEY'
                  AND tc.table_schema = 'public'
                  AND tc.table_name = :table
            ) pk ON pk.column_name = c.column_name
            WHERE c.table_schema = 'public'
              AND c.table_name = :table
            ORDER BY c.ordinal_position
        """)

        result = await conn.execute(query, {"table": table})
        return [
            ColumnInfo(
                name=row[0],
                data_type=row[1],
                nullable=row[2] == "YES",
                key=row[3],
            )
            for row in result.fetchall()
        ]
