"""
easysql - unified database connectivity with an MCP server

Connects to MySQL/MariaDB, PostgreSQL, SQLite and SQL Server databases,
optionally through an SSH tunnel, and exposes query execution and schema
browsing by session id.
"""

__version__ = "1.0.0"

from .adapters import create_adapter
from .exceptions import (
    DatabaseConnectionError,
    EasySQLError,
    NotConnectedError,
    QueryError,
    SSHTunnelError,
    UnsupportedTypeError,
)
from .models.config import ConnectionConfig, SSHSettings
from .models.query import CommandResult, QueryResult
from .models.table import ColumnInfo, PrimaryKey, TableDataResult, TableInfo
from .service import DatabaseService
from .storage import ConnectionStore

__all__ = [
    "ColumnInfo",
    "CommandResult",
    "ConnectionConfig",
    "ConnectionStore",
    "DatabaseConnectionError",
    "DatabaseService",
    "EasySQLError",
    "NotConnectedError",
    "PrimaryKey",
    "QueryError",
    "QueryResult",
    "SSHSettings",
    "SSHTunnelError",
    "TableDataResult",
    "TableInfo",
    "UnsupportedTypeError",
    "create_adapter",
]
