"""Utility modules for the easysql connectivity layer."""

from easysql.utils.serialization import (
    coerce_cell,
    coerce_row,
    coerce_rows,
    dumps_pretty,
)

__all__ = [
    "coerce_cell",
    "coerce_row",
    "coerce_rows",
    "dumps_pretty",
]
