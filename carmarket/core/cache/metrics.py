"""
Cache metrics tracking for one CacheAccessor.

Purpose
-------
Count what the accessor did and which store served it, so ``stats()`` can
show whether the marketplace is running on Redis or on the in-memory
fallback and how well either is hitting.

Responsibilities
----------------
- Per-path hit, write and error counters
- State transition counts (fed by a ConnectionStateMachine listener)
- Derived hit rate and average latencies
- Reset for tests and monitoring cycles

Non-Responsibilities
--------------------
- Cache storage or retrieval (see accessor.py / fallback.py)
- Logging

Architecture Notes
------------------
- One instance per accessor, not class-level state, so several accessors
  (and tests) never share counters
- No lock: every update happens on the accessor's event loop without an
  await in between
"""

from __future__ import annotations

from typing import Any, Dict

from carmarket.core.redis.state import ConnectionState

_COUNTERS = (
    "remote_hits",
    "fallback_hits",
    "misses",
    "remote_sets",
    "fallback_sets",
    "remote_errors",
    "decode_errors",
    "invalidations",
    "state_transitions",
    "degradations",
)


class CacheMetrics:
    """
    Cache performance counters.

    Example
    -------
    >>> metrics = CacheMetrics()
    >>> metrics.record_hit(remote=True)
    >>> metrics.record_miss()
    >>> metrics.get_metrics()["hit_rate"]
    50.0
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, Any] = {}
        self.reset_metrics()

    def record_hit(self, remote: bool) -> None:
        self._metrics["remote_hits" if remote else "fallback_hits"] += 1

    def record_miss(self) -> None:
        self._metrics["misses"] += 1

    def record_set(self, remote: bool) -> None:
        self._metrics["remote_sets" if remote else "fallback_sets"] += 1

    def record_remote_error(self) -> None:
        self._metrics["remote_errors"] += 1

    def record_decode_error(self) -> None:
        self._metrics["decode_errors"] += 1

    def record_invalidation(self, removed: int) -> None:
        self._metrics["invalidations"] += removed

    def record_get_time(self, elapsed_ms: float) -> None:
        self._metrics["total_get_time_ms"] += elapsed_ms

    def record_set_time(self, elapsed_ms: float) -> None:
        self._metrics["total_set_time_ms"] += elapsed_ms

    def on_state_change(
        self, old: ConnectionState, new: ConnectionState, reason: str
    ) -> None:
        """ConnectionStateMachine listener."""
        self._metrics["state_transitions"] += 1
        if new is ConnectionState.DEGRADED:
            self._metrics["degradations"] += 1

    def get_hit_rate(self) -> float:
        """Hit rate percentage (0-100); 0.0 before any read."""
        hits = self._metrics["remote_hits"] + self._metrics["fallback_hits"]
        total = hits + self._metrics["misses"]
        if total == 0:
            return 0.0
        return hits / total * 100

    def get_metrics(self) -> Dict[str, Any]:
        """
        Raw counters plus derived values.

        Returns
        -------
        Dict[str, Any]
            Every counter, plus ``hit_rate`` (percent), ``avg_get_time_ms``,
            ``avg_set_time_ms`` and ``total_operations``.
        """
        hits = self._metrics["remote_hits"] + self._metrics["fallback_hits"]
        total_gets = hits + self._metrics["misses"]
        total_sets = self._metrics["remote_sets"] + self._metrics["fallback_sets"]

        avg_get_time = (
            self._metrics["total_get_time_ms"] / total_gets if total_gets > 0 else 0.0
        )
        avg_set_time = (
            self._metrics["total_set_time_ms"] / total_sets if total_sets > 0 else 0.0
        )

        return {
            **{name: self._metrics[name] for name in _COUNTERS},
            "hit_rate": round(self.get_hit_rate(), 2),
            "avg_get_time_ms": round(avg_get_time, 2),
            "avg_set_time_ms": round(avg_set_time, 2),
            "total_operations": total_gets + total_sets,
        }

    def reset_metrics(self) -> None:
        self._metrics = {name: 0 for name in _COUNTERS}
        self._metrics["total_get_time_ms"] = 0.0
        self._metrics["total_set_time_ms"] = 0.0
