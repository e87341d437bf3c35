"""Core functionality for connections, sessions, execution and introspection."""

from .connection import AsyncConnectionWrapper, BufferedResult, DatabaseConnection
from .editor import RowEditor
from .exporter import TableExporter
from .executor import QueryExecutor
from .inspector import SchemaInspector
from .registry import ConnectionInfo, ConnectionRegistry
from .tunnel import SSHTunnel

__all__ = [
    "AsyncConnectionWrapper",
    "BufferedResult",
    "ConnectionInfo",
    "ConnectionRegistry",
    "DatabaseConnection",
    "QueryExecutor",
    "RowEditor",
    "SSHTunnel",
    "SchemaInspector",
    "TableExporter",
]
