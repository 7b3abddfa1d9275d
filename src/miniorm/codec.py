"""
Bidirectional value coercion between Python values and SQL columns.

Binding (Python -> database) goes through `bind(statement, position, kind, value)`.
Fetching (database -> Python) goes through `fetch(cursor, column_ref, kind)` where
`column_ref` is a column name or a 1-based position.

Timestamps and decimals travel as canonical text so that driver-specific
temporal and numeric types cannot change them. Integers, floats and booleans
travel natively.

Rules per kind:

    kind              bind(None)       bind(value)        fetch
    INT32             NULL INTEGER     int (32-bit)       int, NULL reads as 0
    INT32_NULLABLE    NULL INTEGER     int                int or None
    FLOAT64           CoercionError    float              float, NULL reads as 0.0
    FLOAT64_NULLABLE  NULL DOUBLE      float              float or None
    TEXT              NULL VARCHAR     str                str or None
    BOOL_AS_INT       NULL INTEGER     bool               int(raw) > 0, NULL reads as False
    TIMESTAMP         NULL VARCHAR     'Y-m-d H:M:S' text datetime or None
    DECIMAL_TEXT      NULL NUMERIC     str(Decimal)       Decimal or None
"""
import datetime
import logging
import math
import numbers
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import numpy as np
import pandas as pd
from miniorm.exceptions import CoercionError
from miniorm.types import ValueKind

__all__ = [
    'TIMESTAMP_FORMAT',
    'NULL_SQL_TYPES',
    'format_timestamp',
    'to_native',
    'bind',
    'fetch',
]

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

INT32_MIN = -2**31
INT32_MAX = 2**31 - 1

NULL_SQL_TYPES: dict[ValueKind, str] = {
    ValueKind.INT32: 'INTEGER',
    ValueKind.INT32_NULLABLE: 'INTEGER',
    ValueKind.FLOAT64: 'DOUBLE',
    ValueKind.FLOAT64_NULLABLE: 'DOUBLE',
    ValueKind.TEXT: 'VARCHAR',
    ValueKind.BOOL_AS_INT: 'INTEGER',
    ValueKind.TIMESTAMP: 'VARCHAR',
    ValueKind.DECIMAL_TEXT: 'NUMERIC',
}


class BindTarget(Protocol):
    def bind_at(self, position: int, value: Any) -> None: ...
    def bind_null(self, position: int, sql_type: str) -> None: ...


class FetchSource(Protocol):
    def get(self, column_ref: str | int) -> Any: ...
    def was_null(self) -> bool: ...


def to_native(value: Any) -> Any:
    """Convert NumPy/pandas values to plain Python values.

    NaN, NaT and pd.NA become None.
    """
    if value is None or value is pd.NaT or value is pd.NA:
        return None

    if isinstance(value, float) and math.isnan(value):
        return None

    if isinstance(value, np.datetime64):
        if np.isnat(value):
            return None
        return pd.Timestamp(value).to_pydatetime()

    if isinstance(value, np.generic):
        if isinstance(value, np.floating) and np.isnan(value):
            return None
        return value.item()

    return value


# Python -> database

def _bind_int32(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise CoercionError(f'Expected int, got {type(value).__name__}')
    value = int(value)
    if not INT32_MIN <= value <= INT32_MAX:
        raise CoercionError(f'{value} does not fit a 32-bit integer')
    return value


def _bind_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise CoercionError(f'Expected int, got {type(value).__name__}')
    return int(value)


def _bind_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise CoercionError(f'Expected float, got {type(value).__name__}')
    return float(value)


def _bind_text(value: Any) -> str:
    if not isinstance(value, str):
        raise CoercionError(f'Expected str, got {type(value).__name__}')
    return value


def _bind_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise CoercionError(f'Expected bool, got {type(value).__name__}')
    return value


def format_timestamp(value: datetime.datetime) -> str:
    """Render `value` as TIMESTAMP_FORMAT text with a four-digit year.

    strftime does not zero-pad years before 1000 on every platform.
    """
    return f'{value.year:04d}-' + value.strftime('%m-%d %H:%M:%S')


def _bind_timestamp(value: Any) -> str:
    if not isinstance(value, datetime.datetime):
        raise CoercionError(f'Expected datetime, got {type(value).__name__}')
    return format_timestamp(value)


def _bind_decimal(value: Any) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(Decimal(value))
    raise CoercionError(f'Expected Decimal, got {type(value).__name__}')


_BINDERS: dict[ValueKind, Callable[[Any], Any]] = {
    ValueKind.INT32: _bind_int32,
    ValueKind.INT32_NULLABLE: _bind_int,
    ValueKind.FLOAT64: _bind_float,
    ValueKind.FLOAT64_NULLABLE: _bind_float,
    ValueKind.TEXT: _bind_text,
    ValueKind.BOOL_AS_INT: _bind_bool,
    ValueKind.TIMESTAMP: _bind_timestamp,
    ValueKind.DECIMAL_TEXT: _bind_decimal,
}


def bind(statement: BindTarget, position: int, kind: ValueKind, value: Any) -> None:
    """Bind `value` at the 1-based `position` of `statement` according to `kind`.

    Raises
        CoercionError: If the value does not match the kind, or None is bound
        to a non-nullable float
    """
    value = to_native(value)
    if value is None:
        if kind is ValueKind.FLOAT64:
            raise CoercionError(f'Cannot bind None at position {position} as {kind.name}')
        statement.bind_null(position, NULL_SQL_TYPES[kind])
        return
    statement.bind_at(position, _BINDERS[kind](value))


# Database -> Python

def _read_int(raw: Any) -> int:
    """Read an integer the way a typed getter does: NULL is 0."""
    if raw is None:
        return 0
    if isinstance(raw, bool | int):
        return int(raw)
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, Decimal) and raw.is_finite() and raw == raw.to_integral_value():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            raise CoercionError(f'Cannot read {raw!r} as int') from None
    raise CoercionError(f'Cannot read {type(raw).__name__} {raw!r} as int')


def _read_float(raw: Any) -> float:
    if raw is None:
        return 0.0
    if isinstance(raw, numbers.Real | Decimal):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw)
        except ValueError:
            raise CoercionError(f'Cannot read {raw!r} as float') from None
    raise CoercionError(f'Cannot read {type(raw).__name__} {raw!r} as float')


def _read_text(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, bytes | bytearray | memoryview):
        try:
            return bytes(raw).decode('utf-8')
        except UnicodeDecodeError as err:
            raise CoercionError(f'Cannot read binary value as text: {err}') from err
    return str(raw)


def _fetch_int32(cursor: FetchSource, ref: str | int) -> int:
    return _read_int(cursor.get(ref))


def _fetch_int32_nullable(cursor: FetchSource, ref: str | int) -> int | None:
    value = _read_int(cursor.get(ref))
    return None if cursor.was_null() else value


def _fetch_float64(cursor: FetchSource, ref: str | int) -> float:
    return _read_float(cursor.get(ref))


def _fetch_float64_nullable(cursor: FetchSource, ref: str | int) -> float | None:
    value = _read_float(cursor.get(ref))
    return None if cursor.was_null() else value


def _fetch_text(cursor: FetchSource, ref: str | int) -> str | None:
    value = _read_text(cursor.get(ref))
    return None if cursor.was_null() else value


def _fetch_bool_as_int(cursor: FetchSource, ref: str | int) -> bool:
    return _read_int(cursor.get(ref)) > 0


def _fetch_timestamp(cursor: FetchSource, ref: str | int) -> datetime.datetime | None:
    raw = cursor.get(ref)
    if cursor.was_null():
        return None
    if isinstance(raw, datetime.datetime):
        return raw.replace(microsecond=0)
    text = _read_text(raw)
    try:
        return datetime.datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError as err:
        raise CoercionError(f'Cannot parse timestamp {text!r}: {err}') from err


def _fetch_decimal_text(cursor: FetchSource, ref: str | int) -> Decimal | None:
    raw = cursor.get(ref)
    if cursor.was_null():
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, float):
        # shortest repr round-trips the stored literal
        raw = repr(raw)
    try:
        return Decimal(_read_text(raw).strip())
    except InvalidOperation:
        raise CoercionError(f'Cannot parse decimal {raw!r}') from None


_FETCHERS: dict[ValueKind, Callable[[FetchSource, str | int], Any]] = {
    ValueKind.INT32: _fetch_int32,
    ValueKind.INT32_NULLABLE: _fetch_int32_nullable,
    ValueKind.FLOAT64: _fetch_float64,
    ValueKind.FLOAT64_NULLABLE: _fetch_float64_nullable,
    ValueKind.TEXT: _fetch_text,
    ValueKind.BOOL_AS_INT: _fetch_bool_as_int,
    ValueKind.TIMESTAMP: _fetch_timestamp,
    ValueKind.DECIMAL_TEXT: _fetch_decimal_text,
}


def fetch(cursor: FetchSource, column_ref: str | int, kind: ValueKind) -> Any:
    """Read `column_ref` from the current row of `cursor` according to `kind`.

    Raises
        CoercionError: If the stored value cannot be read as the kind
    """
    return _FETCHERS[kind](cursor, column_ref)
