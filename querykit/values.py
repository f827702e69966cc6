from __future__ import annotations

# querykit/values.py
import datetime as dt
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, List, Optional, Union

from .errors import ConfigurationError

# What SQLite can store: INTEGER, REAL, TEXT, BLOB, NULL.
SqlValue = Union[int, float, str, bytes, None]


def to_sql_value(value: Any, key: Optional[object] = None) -> SqlValue:
    """
    Convert a Python value into one of the primitive types SQLite stores.

    Args:
        value: value to bind
        key: column name or position, only used in the error message

    Raises:
        ConfigurationError: the value has no SQLite representation
    """
    if value is None:
        return None
    # bool is an int subclass, keep it first
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    where = f" for '{key}'" if key is not None else ""
    raise ConfigurationError(f"Value{where} has unsupported type {type(value).__name__}")


def is_single_value(values: Any) -> bool:
    return isinstance(values, (str, bytes, bytearray, memoryview)) or not isinstance(values, Sequence)


def normalize_params(values: Any) -> List[SqlValue]:
    """None -> [], a single value -> [value], any other sequence -> list; each element converted."""
    if values is None:
        return []
    if is_single_value(values):
        return [to_sql_value(values, 0)]
    return [to_sql_value(v, i) for i, v in enumerate(values)]
