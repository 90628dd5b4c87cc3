"""
Cache key builders for marketplace payloads.

Keys are namespaced by payload so ``clear("listings")`` drops every listing
page without touching filter options.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Union

LISTINGS_PREFIX = "listings"
FILTER_OPTIONS_KEY = "filters:options"

Identifier = Union[int, str]


def listings_key(filters: Optional[Mapping[str, Any]] = None) -> str:
    """
    Key for one page of listing search results.

    Filters are serialized canonically (sorted keys, no whitespace, ``None``
    values dropped) so the same search always maps to the same key.

    >>> listings_key({"page": 1, "brand": "Audi"})
    'listings:{"brand":"Audi","page":1}'
    """
    canonical = {k: v for k, v in (filters or {}).items() if v is not None}
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return f"{LISTINGS_PREFIX}:{encoded}"


def filter_options_key() -> str:
    return FILTER_OPTIONS_KEY


def user_listings_key(user_id: Identifier) -> str:
    _require_id(user_id, "user_id")
    return f"users:{user_id}:listings"


def listing_key(listing_id: Identifier) -> str:
    _require_id(listing_id, "listing_id")
    return f"listing:{listing_id}"


def _require_id(value: Identifier, name: str) -> None:
    if value is None or str(value).strip() == "":
        raise ValueError(f"{name} must not be empty")
