"""
Deterministic JSON text for compiler output.

Mongo filters and serialized trees are exported as text with sorted keys and
fixed separators, so the same tree always yields byte-for-byte identical
output (useful for diffing saved rules and for content hashes).
"""

import json
from datetime import date, datetime
from typing import Any


def canonicalize_json(obj: Any) -> Any:
    """
    Produce a canonical representation of a JSON-like object.

    - Dictionary keys are sorted at every level
    - Tuples become lists; list order is preserved
    - date/datetime values become ISO 8601 strings

    Example:
        >>> canonicalize_json({"z": 1, "a": {"c": 2, "b": 3}})
        {'a': {'b': 3, 'c': 2}, 'z': 1}
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize_json(v) for k, v in sorted(obj.items())}

    if isinstance(obj, (list, tuple)):
        return [canonicalize_json(item) for item in obj]

    if isinstance(obj, (datetime, date)):
        return obj.isoformat()

    return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Compact canonical JSON string.

    Example:
        >>> to_canonical_json_string({"age": {"$gt": 18}})
        '{"age":{"$gt":18}}'
    """
    return json.dumps(
        canonicalize_json(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def to_canonical_json_pretty(obj: Any) -> str:
    """Canonical JSON string with 2-space indentation."""
    return json.dumps(canonicalize_json(obj), sort_keys=True, indent=2, ensure_ascii=False)
