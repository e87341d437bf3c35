"""Database adapters for specific engine implementations."""

from .base import BaseAdapter
from .mysql import MySQLAdapter
from .postgresql import PostgresAdapter
from .sqlite import SQLiteAdapter
from .sqlserver import SQLServerAdapter
from ..exceptions import UnsupportedTypeError

__all__ = [
    "BaseAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLiteAdapter",
    "SQLServerAdapter",
    "create_adapter",
    "supported_types",
]

_ADAPTERS: tuple[type[BaseAdapter], ...] = (
    MySQLAdapter,
    PostgresAdapter,
    SQLiteAdapter,
    SQLServerAdapter,
)


def supported_types() -> list[str]:
    """All engine names accepted by :func:`create_adapter`."""
    return [name for adapter_class in _ADAPTERS for name in adapter_class.names]


def create_adapter(db_type: str) -> BaseAdapter:
    """
    Factory function to create the adapter for an engine kind.

    Args:
        db_type: Engine name from the connection config (case-insensitive)

    Returns:
        Database adapter instance

    Raises:
        UnsupportedTypeError: If the engine kind is not supported
    """
    engine = db_type.strip().lower()

    for adapter_class in _ADAPTERS:
        if engine in adapter_class.names:
            return adapter_class()

    raise UnsupportedTypeError(db_type)
