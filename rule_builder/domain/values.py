"""
Condition value coercion shared by the validator and the compiler backends.
"""

import math
import re
from datetime import date, datetime, time
from typing import Any

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)
_DECIMAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def is_blank(value: Any) -> bool:
    """True for a missing value: None, an empty string or an empty list."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def to_number(value: Any) -> int | float | None:
    """
    Numeric form of a condition value, or None when it is not a number.

    Plain decimal strings are accepted ("18" -> 18, "2.5" -> 2.5, "1e3" -> 1000.0).
    Booleans, NaN, infinities and forms such as "inf" or "1_000" are not numbers.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER.fullmatch(text):
            try:
                return int(text)
            except ValueError:
                # beyond the interpreter's integer string conversion limit
                return None
        if not _DECIMAL.fullmatch(text):
            return None
        number = float(text)
        return number if math.isfinite(number) else None
    return None


def format_number(number: int | float) -> str:
    """Text form of a number; integral floats drop the fraction (18.0 -> "18")."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def parse_date(value: Any) -> datetime | None:
    """
    Parse a date condition value (ISO 8601 string, date or datetime).

    Returns None when the value is not a date.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None
