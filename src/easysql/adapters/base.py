"""Base adapter abstract class for engine-specific implementations."""

import math
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Union, TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection

from easysql.models.config import LIVE_POOL, PROBE_POOL, ConnectionConfig, PoolSettings
from easysql.models.table import ColumnInfo, TableInfo

if TYPE_CHECKING:
    from easysql.core.connection import AsyncConnectionWrapper

# Type alias for connection types
ConnectionType = Union[AsyncConnection, "AsyncConnectionWrapper"]

PROBE_QUERY = "SELECT 1"


class BaseAdapter(ABC):
    """Engine-specific dialect: URLs, pools, statement classification and catalogs."""

    #: Engine names accepted in ``ConnectionConfig.db_type``
    names: ClassVar[tuple[str, ...]] = ()
    #: SQLAlchemy drivername used to build the URL
    drivername: ClassVar[str] = ""
    default_port: ClassVar[int] = 0
    #: Statements starting with one of these keywords take the read path
    read_keywords: ClassVar[frozenset[str]] = frozenset()
    #: Decide read vs. write by whether the statement returned a result set
    classify_by_result: ClassVar[bool] = False
    #: Blocking driver: run on worker threads, one fresh connection per use
    sync_only: ClassVar[bool] = False
    #: The database is a local file, so there is nothing to dial or tunnel
    file_based: ClassVar[bool] = False
    #: Driver connect() keyword that caps the dial, in seconds
    connect_timeout_arg: ClassVar[Optional[str]] = None
    #: Statements wrapped around a whole-database backup script
    script_prologue: ClassVar[tuple[str, ...]] = ()
    script_epilogue: ClassVar[tuple[str, ...]] = ()

    @property
    def name(self) -> str:
        return self.names[0]

    def build_url(self, config: ConnectionConfig, host: str, port: int) -> URL:
        """
        Build the SQLAlchemy URL for the (possibly tunneled) endpoint.

        Args:
            config: Connection configuration (credentials, database)
            host: Host to dial, already resolved
            port: Port to dial

        Returns:
            SQLAlchemy URL object
        """
        return URL.create(
            self.drivername,
            username=config.username or None,
            password=config.password or None,
            host=host,
            port=port or self.default_port,
            database=self.default_database(config),
        )

    def default_database(self, config: ConnectionConfig) -> Optional[str]:
        return config.database or None

    def engine_options(
        self, config: ConnectionConfig, probe: bool = False
    ) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``/``create_engine``."""
        pool = self.pool_for(probe)
        options: dict[str, Any] = {
            "pool_size": pool.max_connections,
            "max_overflow": 0,
            "pool_timeout": pool.acquire_timeout,
            "pool_pre_ping": not probe,
            "isolation_level": "AUTOCOMMIT",
        }
        if pool.idle_timeout:
            options["pool_recycle"] = pool.idle_timeout
        connect_args = self.connect_args(pool)
        if connect_args:
            options["connect_args"] = connect_args
        return options

    def pool_settings(self) -> PoolSettings:
        return LIVE_POOL

    def pool_for(self, probe: bool) -> PoolSettings:
        return PROBE_POOL if probe else self.pool_settings()

    def connect_args(self, pool: PoolSettings) -> dict[str, Any]:
        """Driver keyword arguments that bound how long a dial may take."""
        if self.connect_timeout_arg is None:
            return {}
        return {self.connect_timeout_arg: pool.acquire_timeout}

    def dial_timeout(self, probe: bool = False) -> Optional[float]:
        """Seconds a checkout may spend dialing; None for local files."""
        if self.file_based:
            return None
        return float(self.pool_for(probe).acquire_timeout)

    def is_read_statement(self, sql: str) -> bool:
        """Whether the trimmed, upper-cased statement starts with a read keyword."""
        normalized = sql.strip().upper()
        return any(normalized.startswith(keyword) for keyword in self.read_keywords)

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name for this dialect."""
        ...

    def qualify(self, database: Optional[str], table: str) -> str:
        """Build the table reference used in generated statements."""
        return self.quote_identifier(table)

    def quote_for_text(self, name: str) -> str:
        """Quoted identifier safe to embed in a ``text()`` clause."""
        return self._bindable(self.quote_identifier(name))

    def qualify_for_text(self, database: Optional[str], table: str) -> str:
        return self._bindable(self.qualify(database, table))

    async def prepare(self, conn: ConnectionType, database: Optional[str]) -> None:
        """Point the borrowed connection at ``database`` before use."""
        return None

    async def interrupt(self, conn: ConnectionType) -> None:
        """Abort the statement running on ``conn``; drivers without a hook wait it out."""
        return None
        return float(self.pool_for(probe).acquire_timeout)

    def is_read_statement(self, sql: str) -> bool:
        """Whether the trimmed, upper-cased statement starts with a read keyword."""
        normalized = sql.strip().upper()
        return any(normalized.startswith(keyword) for keyword in self.read_keywords)

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name for this dialect."""
        ...

    def qualify(self, database: Optional[str], table: str) -> str:
        """Build the table reference used in generated statements."""
        return self.quote_identifier(table)

    async def prepare(self, conn: ConnectionType, database: Optional[str]) -> None:
        """Point the borrowed connection at ``database`` before use."""
        return None

    @abstractmethod
    async def list_databases(self, conn: ConnectionType) -> list[str]:
        """
        List the databases visible to the session.

        Args:
            conn: Database connection

        Returns:
            Database names
        """
        ...

    @abstractmethod
    async def list_tables(
        self, conn: ConnectionType, database: Optional[str]
    ) -> list[TableInfo]:
        """
        List tables and views with their row counts.

        Args:
            conn: Database connection
            database: Database to list

        Returns:
            Table information, tables and views
        """
        ...

    @abstractmethod
    async def list_columns(
        self, conn: ConnectionType, database: Optional[str], table: str
    ) -> list[ColumnInfo]:
        """
        Describe the columns of a table.

        Args:
            conn: Database connection
            database: Database holding the table
            table: Table name

        Returns:
            Column information in ordinal order
        """
        ...

    def count_query(self, database: Optional[str], table: str) -> str:
        """Exact row count of a table."""
        return f"SELECT COUNT(*) FROM {self.qualify(database, table)}"

    def page_query(
        self, database: Optional[str], table: str, offset: int, limit: int
    ) -> str:
        """Fetch one window of rows in natural order."""
        return (
            f"SELECT * FROM {self.qualify(database, table)} "
            f"LIMIT {int(limit)} OFFSET {int(offset)}"
        )

    def render_literal(self, value: Any) -> str:
        """Render a decoded cell as a SQL literal for dump scripts."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return repr(value) if math.isfinite(value) else "NULL"
        return self._string_literal(str(value))

    def _string_literal(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def insert_statement(
        self, table: str, columns: list[str], row: list[Any]
    ) -> str:
        """One INSERT for a dump script, against the unqualified table name."""
        names = ", ".join(self.quote_identifier(column) for column in columns)
        values = ", ".join(self.render_literal(value) for value in row)
        return f"INSERT INTO {self.quote_identifier(table)} ({names}) VALUES ({values});"

    async def create_statement(
        self, conn: ConnectionType, database: Optional[str], table: str
    ) -> Optional[str]:
        """DDL that recreates the table, where the engine can report it."""
        return None

    async def count_rows(
        self, conn: ConnectionType, database: Optional[str], table: str
    ) -> int:
        statement = self._bindable(self.count_query(database, table))
        result = await conn.execute(text(statement))
        value = result.scalar()
        return int(value) if value is not None else 0

    def _quote_with(self, name: str, opening: str, closing: str) -> str:
        return f"{opening}{name.replace(closing, closing * 2)}{closing}"

    @staticmethod
    def _as_text(value: Any) -> str:
        # Some MySQL builds return information_schema columns as bytes
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        return "" if value is None else str(value)

    @staticmethod
    def _bindable(sql: str) -> str:
        # text() reads ":name" as a bind parameter; "\:" is a literal colon
        return sql.replace(":", "\\:")
