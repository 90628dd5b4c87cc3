"""
In-process fallback store used while the remote cache is unusable.

Purpose
-------
Keep values keyed by string (the accessor stores JSON payloads), each stamped with the time it was
written, and hide entries once they are older than the TTL.

Expiry
------
- Lazy: ``get`` deletes a stale entry it finds.
- Sweep: at most once per ``sweep_interval`` seconds, a write purges every
  stale entry. Disabled with 0.
- Bound: with ``max_entries`` > 0 the least recently used entry is evicted
  when a new key would exceed the bound. 0 keeps the map unbounded.

Not thread-safe. All access is expected from one asyncio event loop.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from carmarket.core.logging.logger import get_logger

logger = get_logger(__name__)

WILDCARD = "*"

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return self.age(now) >= ttl_seconds


class FallbackStore:
    """
    TTL map with optional LRU bound.

    Example
    -------
    >>> store = FallbackStore(ttl_seconds=300)
    >>> store.set("filters:options", {"brands": ["Audi", "BMW"]})
    >>> store.get("filters:options")
    {'brands': ['Audi', 'BMW']}
    >>> store.clear("filters")
    1
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 0,
        sweep_interval: float = 0.0,
        clock: Optional[Clock] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._clock: Clock = clock or time.monotonic
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._last_sweep = self._clock()
        self.expired_count = 0
        self.evicted_count = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock(), self._ttl):
            del self._entries[key]
            self.expired_count += 1
            logger.debug("Expired in-memory cache entry deleted", extra={"key": key})
            return None

        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        self._maybe_sweep(now)

        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=now)

        if self._max_entries and len(self._entries) > self._max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evicted_count += 1
            logger.debug(
                "In-memory cache full, evicted least recently used entry",
                extra={"key": evicted_key, "max_entries": self._max_entries},
            )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self, pattern: str = WILDCARD) -> int:
        """
        Remove entries matching ``pattern`` and return how many were removed.

        ``"*"`` removes everything. Any other pattern removes keys containing
        the pattern with its ``*`` characters stripped, so ``"listings:*"``
        and ``"listings"`` both match ``"listings:page1"``.
        """
        if pattern == WILDCARD:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        literal = pattern.replace(WILDCARD, "")
        doomed = [key for key in self._entries if literal in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def sweep(self) -> int:
        """Drop every stale entry now. Returns the number dropped."""
        now = self._clock()
        self._last_sweep = now
        stale = [
            key
            for key, entry in self._entries.items()
            if entry.is_expired(now, self._ttl)
        ]
        for key in stale:
            del self._entries[key]
        self.expired_count += len(stale)
        if stale:
            logger.debug("Swept stale in-memory cache entries", extra={"count": len(stale)})
        return len(stale)

    def _maybe_sweep(self, now: float) -> None:
        if self._sweep_interval and now - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
