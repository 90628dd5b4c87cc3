"""
Cache-aside layer for the CarMarket API.

Exports
-------
CacheAccessor / CacheStats - Remote-first cache with in-memory fallback
CacheSettings - Per-accessor tunables
FallbackStore / CacheEntry - TTL map used while Redis is unusable
CacheMetrics - Per-accessor counters
listings_key, filter_options_key, user_listings_key, listing_key - Key builders

Usage
-----
```python
from carmarket.core.cache import CacheAccessor, listings_key

cache = CacheAccessor()
await cache.initialize()

page = await cache.get_or_set(listings_key(filters), load_listings_page)
```
"""

from carmarket.core.cache.accessor import CacheAccessor, CacheStats
from carmarket.core.cache.fallback import CacheEntry, FallbackStore
from carmarket.core.cache.keys import (
    filter_options_key,
    listing_key,
    listings_key,
    user_listings_key,
)
from carmarket.core.cache.metrics import CacheMetrics
from carmarket.core.cache.settings import CacheSettings

__all__ = [
    "CacheAccessor",
    "CacheStats",
    "CacheSettings",
    "CacheEntry",
    "FallbackStore",
    "CacheMetrics",
    "listings_key",
    "filter_options_key",
    "user_listings_key",
    "listing_key",
]
