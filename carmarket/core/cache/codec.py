"""
JSON encoding for cached values.

Both stores hold the JSON text, so every read hands back a fresh object. Both
paths go through ``encode`` first so a value that Redis would reject (or
silently alter) is rejected on every path.
"""

from __future__ import annotations

import json
from typing import Any

from carmarket.core.exceptions import CacheSerializationError


def encode(key: str, value: Any) -> str:
    """
    Serialize ``value`` and check it decodes back to an equal value.

    Raises
    ------
    CacheSerializationError
        For non-JSON types, NaN/Infinity, or values that would change shape
        on the way back (tuples, non-string dict keys).
    """
    try:
        payload = json.dumps(value, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise CacheSerializationError(key, str(exc), exc) from exc

    if json.loads(payload) != value:
        raise CacheSerializationError(
            key, f"{type(value).__name__} does not survive a JSON round trip"
        )
    return payload


def decode(payload: str) -> Any:
    """Parse a stored payload. Raises ``ValueError`` on malformed JSON."""
    return json.loads(payload)
