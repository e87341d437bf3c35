"""Pydantic models for connection configs, metadata and results."""

from .config import (
    LIVE_POOL,
    PROBE_POOL,
    SQLITE_POOL,
    ConnectionConfig,
    PoolSettings,
    SSHSettings,
    resolve_host,
)
from .query import CellValue, CommandResult, QueryResult
from .table import ColumnInfo, PrimaryKey, TableDataResult, TableInfo

__all__ = [
    "CellValue",
    "ColumnInfo",
    "CommandResult",
    "ConnectionConfig",
    "LIVE_POOL",
    "PROBE_POOL",
    "PoolSettings",
    "PrimaryKey",
    "QueryResult",
    "SQLITE_POOL",
    "SSHSettings",
    "TableDataResult",
    "TableInfo",
    "resolve_host",
]
