"""Cell decoding and JSON serialization using orjson.

Drivers already hand back typed Python values, so decoding is driven by
the value's type rather than by guessing:

- None, bool, str → unchanged
- int → unchanged inside the signed 64-bit range, string outside it
- float → unchanged, non-finite values as their string spelling
- Decimal → int when integral, float when the conversion is exact,
  string otherwise
- datetime, date, time → ISO format
- UUID, IP addresses → string
- bytes → UTF-8 text, falling back to base64
- lists, dicts (JSON columns, arrays) → compact JSON text

Anything that still cannot be represented becomes None and is logged.
"""

import base64
import datetime
import decimal
import ipaddress
import logging
import math
import uuid
from typing import Any, Iterable

import orjson

from easysql.models.query import CellValue

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_warned_types: set[type] = set()


def _decode_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii")


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation

    Raises:
        TypeError: If object cannot be serialized
    """
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    # timedelta - convert to total seconds
    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return _decode_bytes(bytes(obj))

    # Sets - convert to list
    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
        ),
    ):
        return str(obj)

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _decimal_to_cell(value: decimal.Decimal) -> CellValue:
    if not value.is_finite():
        return str(value)
    # NUMERIC(p, 0) and SUM() over integers arrive as integral Decimals
    if value.as_tuple().exponent >= 0 and INT64_MIN <= value <= INT64_MAX:
        return int(value)
    as_float = float(value)
    if decimal.Decimal(repr(as_float)) == value:
        return as_float
    return str(value)


def coerce_cell(value: Any) -> CellValue:
    """
    Decode one driver value into null, string, int, float or bool.

    Args:
        value: Value as returned by the DBAPI driver

    Returns:
        Scalar cell value; None when the value cannot be represented
    """
    if value is None or isinstance(value, (bool, str)):
        return value

    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return value
        return str(value)

    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return str(value)

    if isinstance(value, decimal.Decimal):
        return _decimal_to_cell(value)

    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()

    if isinstance(value, datetime.timedelta):
        return str(value)

    if isinstance(value, uuid.UUID):
        return str(value)

    if isinstance(value, (bytes, bytearray, memoryview)):
        return _decode_bytes(bytes(value))

    try:
        encoded = orjson.dumps(value, default=_default_handler)
    except TypeError:
        value_type = type(value)
        if value_type not in _warned_types:
            _warned_types.add(value_type)
            logger.warning(
                f"Cannot decode value of type {value_type.__name__}; returning NULL"
            )
        return None

    decoded = orjson.loads(encoded)
    if isinstance(decoded, (dict, list)):
        return encoded.decode("utf-8")
    return coerce_cell(decoded)


def coerce_row(row: Iterable[Any]) -> list[CellValue]:
    """Decode every cell of a positional row."""
    return [coerce_cell(value) for value in row]


def coerce_rows(rows: Iterable[Iterable[Any]]) -> list[list[CellValue]]:
    """Decode every row of a result set."""
    return [coerce_row(row) for row in rows]


def dumps_pretty(obj: Any) -> bytes:
    """Serialize object to indented JSON bytes."""
    return orjson.dumps(obj, default=_default_handler, option=orjson.OPT_INDENT_2)
