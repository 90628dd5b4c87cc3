"""
CacheAccessor: cache-aside access for the CarMarket API.

Purpose
-------
Give request handlers one ``get`` / ``set`` / ``clear`` / ``stats`` surface
that is backed by Redis when it is reachable and by an in-process map when it
is not, without the caller ever seeing which one served the call.

Responsibilities
----------------
- Pick the remote or fallback path per call from the ConnectionState
- Report remote failures to RedisConnection (CONNECTED -> DEGRADED) and
  finish the call on the fallback path
- JSON-encode values up front so both paths accept the same values
- Expose lifecycle (initialize, close, reconnect) and a stats snapshot

Non-Responsibilities
--------------------
- Reconnect scheduling (ConnectionMonitor)
- Deciding what to cache or for which route (API handlers, see keys.py)

Architecture Notes
------------------
- Only one store is authoritative at a time. A remote hit or a remote write
  never touches the fallback map; a remote miss still checks the fallback
  map so entries written during an earlier outage stay readable until their
  TTL runs out.
- Infrastructure failures are absorbed and logged. The one error that
  reaches callers is CacheSerializationError, raised by ``set`` for values
  that are not JSON.
- No per-call timeout on get/set/clear; the client's socket timeouts and
  retry policy bound them.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from carmarket.core.cache import codec
from carmarket.core.cache.fallback import WILDCARD, Clock, FallbackStore
from carmarket.core.cache.metrics import CacheMetrics
from carmarket.core.cache.settings import CacheSettings
from carmarket.core.exceptions import CacheOperationError
from carmarket.core.logging.logger import LogContext, get_logger
from carmarket.core.redis.connection import ClientFactory, RedisConnection
from carmarket.core.redis.monitor import ConnectionMonitor
from carmarket.core.redis.state import ConnectionState

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]


@dataclass
class CacheStats:
    """Point-in-time view of both stores."""

    remote_connected: bool
    remote_available: bool
    state: str
    fallback_size: int
    fallback_keys: List[str] = field(default_factory=list)
    remote_info: Optional[Dict[str, Any]] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    monitor: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.remote_info is None:
            data.pop("remote_info")
        return data


class CacheAccessor:
    """
    Cache-aside accessor over Redis with an in-memory fallback.

    Example
    -------
    >>> cache = CacheAccessor(CacheSettings(redis_url="redis://cache:6379/0"))
    >>> await cache.initialize()
    >>> await cache.set(listings_key({"brand": "Audi"}), page)
    >>> await cache.get(listings_key({"brand": "Audi"}))
    {...}
    >>> await cache.clear("listings")
    >>> await cache.close()
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or CacheSettings.from_config()
        self._connection = RedisConnection(self._settings, client_factory)
        self._fallback = FallbackStore(
            ttl_seconds=self._settings.ttl_seconds,
            max_entries=self._settings.fallback_max_entries,
            sweep_interval=self._settings.fallback_sweep_interval_seconds,
            clock=clock or time.monotonic,
        )
        self._metrics = CacheMetrics()
        self._connection.state_machine.add_listener(self._metrics.on_state_change)

        self._monitor: Optional[ConnectionMonitor] = None
        if self._settings.remote_configured and self._settings.auto_reconnect:
            self._monitor = ConnectionMonitor(self._connection)

        self._initialized = False
        self._closed = False

    # ═══════════════════════════════════════════════════════════════════════
    # PROPERTIES
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def connection(self) -> RedisConnection:
        return self._connection

    @property
    def fallback(self) -> FallbackStore:
        return self._fallback

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    @property
    def monitor(self) -> Optional[ConnectionMonitor]:
        return self._monitor

    def is_initialized(self) -> bool:
        return self._initialized

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """
        Connect to the remote cache if one is configured.

        Never raises. Without REDIS_URL the accessor serves everything from
        the in-memory map. If the first connect fails the accessor starts
        DEGRADED and the monitor keeps retrying in the background.
        """
        if self._initialized:
            logger.debug("Cache accessor already initialized")
            return
        self._initialized = True

        async with LogContext(component="cache", operation="initialize"):
            connected = await self._connection.open()

            if self._monitor is not None:
                self._monitor.start()

            logger.info(
                "Cache accessor initialized",
                extra={
                    "remote_configured": self._settings.remote_configured,
                    "remote_connected": connected,
                    "state": self.state.value,
                    "ttl_seconds": self._settings.ttl_seconds,
                },
            )

    async def close(self) -> None:
        """Stop the monitor and close the remote client. Fallback data is kept."""
        if self._closed:
            return
        self._closed = True

        if self._monitor is not None:
            await self._monitor.stop()
        await self._connection.close()

        logger.info(
            "Cache accessor closed",
            extra={"fallback_size": self._fallback.size()},
        )

    async def reconnect(self) -> bool:
        """
        Fire a reconnect event.

        Resets the monitor's attempt budget and makes one immediate attempt
        when DEGRADED. Returns True if the remote cache is connected
        afterwards.
        """
        if not self._settings.remote_configured or self._closed or not self._initialized:
            logger.debug(
                "Reconnect ignored",
                extra={
                    "remote_configured": self._settings.remote_configured,
                    "closed": self._closed,
                    "initialized": self._initialized,
                },
            )
            return False

        if self.state is ConnectionState.CONNECTED:
            return True

        if self._monitor is not None:
            self._monitor.request_reconnect()

        if self.state is ConnectionState.DEGRADED and self._connection.has_client():
            self._connection.on_reconnecting(1, 0.0)
            await self._connection.probe("reconnect", 1)

        return self._connection.is_connected()

    # ═══════════════════════════════════════════════════════════════════════
    # CACHE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value for ``key``, or None when not found.

        Raises
        ------
        ValueError
            If ``key`` is not a non-empty string.
        """
        _require_key(key)
        start_time = time.perf_counter()

        try:
            if self._connection.is_connected():
                found, value = await self._remote_get(key)
                if found:
                    self._metrics.record_hit(remote=True)
                    return value

            payload = self._fallback.get(key)
            if payload is not None:
                value = codec.decode(payload)
                if value is not None:
                    self._metrics.record_hit(remote=False)
                    return value

            self._metrics.record_miss()
            return None
        finally:
            self._metrics.record_get_time((time.perf_counter() - start_time) * 1000)

    async def set(self, key: str, value: Any) -> None:
        """
        Cache ``value`` under ``key`` for the configured TTL.

        Raises
        ------
        ValueError
            If ``key`` is not a non-empty string.
        CacheSerializationError
            If ``value`` does not survive a JSON round trip.
        """
        _require_key(key)
        payload = codec.encode(key, value)
        start_time = time.perf_counter()

        try:
            if self._connection.is_connected():
                try:
                    await self._connection.client.set(
                        key, payload, ex=self._settings.ttl_seconds
                    )
                    self._metrics.record_set(remote=True)
                    return
                except Exception as exc:
                    self._remote_failed("set", key, exc)

            self._fallback.set(key, payload)
            self._metrics.record_set(remote=False)
        finally:
            self._metrics.record_set_time((time.perf_counter() - start_time) * 1000)

    async def clear(self, pattern: str = WILDCARD) -> None:
        """
        Remove cached entries matching ``pattern`` from both stores.

        The remote store uses Redis glob matching. The fallback map removes
        everything for ``"*"`` and otherwise every key containing the pattern
        with its ``*`` characters stripped.
        """
        remote_removed = 0
        if self._connection.is_connected():
            try:
                client = self._connection.client
                keys = await client.keys(pattern)
                if keys:
                    remote_removed = await client.delete(*keys)
            except Exception as exc:
                self._remote_failed("clear", pattern, exc)

        fallback_removed = self._fallback.clear(pattern)
        self._metrics.record_invalidation(remote_removed + fallback_removed)

        logger.debug(
            "Cache cleared",
            extra={
                "pattern": pattern,
                "remote_removed": remote_removed,
                "fallback_removed": fallback_removed,
            },
        )

    async def get_or_set(self, key: str, loader: Loader) -> Optional[Any]:
        """
        Cache-aside helper: return the cached value or load, store and return it.

        A loader result of None is returned without being cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None:
            await self.set(key, value)
        return value

    async def stats(self) -> CacheStats:
        """Snapshot of both stores. Never raises."""
        remote_info: Optional[Dict[str, Any]] = None
        if self._connection.is_connected():
            try:
                remote_info = await self._connection.memory_info()
            except Exception as exc:
                self._metrics.record_remote_error()
                logger.warning(
                    "Could not read remote cache memory info",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )

        return CacheStats(
            remote_connected=self._connection.is_connected(),
            remote_available=self._connection.has_client(),
            state=self.state.value,
            fallback_size=self._fallback.size(),
            fallback_keys=self._fallback.keys(),
            remote_info=remote_info,
            metrics=self._metrics.get_metrics(),
            monitor=self._monitor.get_status() if self._monitor else None,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # INTERNALS
    # ═══════════════════════════════════════════════════════════════════════

    async def _remote_get(self, key: str) -> Tuple[bool, Any]:
        try:
            payload = await self._connection.client.get(key)
        except Exception as exc:
            self._remote_failed("get", key, exc)
            return False, None

        if payload is None:
            return False, None

        try:
            return True, codec.decode(payload)
        except ValueError as exc:
            self._metrics.record_decode_error()
            logger.warning(
                "Remote cache payload is not valid JSON, treating as miss",
                extra={
                    "key": key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False, None

    def _remote_failed(self, operation: str, key: str, exc: Exception) -> None:
        self._metrics.record_remote_error()
        self._connection.on_error(CacheOperationError(operation, key, exc))


def _require_key(key: Any) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError("cache key must be a non-empty string")
