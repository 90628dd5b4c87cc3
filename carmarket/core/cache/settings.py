"""
Per-accessor snapshot of the cache layer's tunables.

``Config`` is process-wide and reloadable; a ``CacheAccessor`` instead keeps
the values it was built with, so tests and multiple accessors can each use
their own settings.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from carmarket.core.config.config import Config
from carmarket.core.exceptions import ConfigurationError
from carmarket.core.redis.backoff import ReconnectPolicy


@dataclass(frozen=True, slots=True)
class CacheSettings:
    """Settings for one CacheAccessor and its remote connection."""

    redis_url: Optional[str] = None
    ttl_seconds: int = 300
    connect_timeout_seconds: float = 10.0
    reconnect_policy: ReconnectPolicy = ReconnectPolicy()
    max_retries_per_request: int = 3
    health_check_interval_seconds: float = 30.0
    fallback_max_entries: int = 0
    fallback_sweep_interval_seconds: float = 60.0
    auto_reconnect: bool = True

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds", "must be positive")
        if self.connect_timeout_seconds <= 0:
            raise ConfigurationError("connect_timeout_seconds", "must be positive")
        if self.fallback_max_entries < 0:
            raise ConfigurationError("fallback_max_entries", "must be >= 0")

    @property
    def remote_configured(self) -> bool:
        return bool(self.redis_url)

    @property
    def url_scheme(self) -> str:
        if not self.redis_url or "://" not in self.redis_url:
            return "none"
        return self.redis_url.split("://", 1)[0]

    @classmethod
    def from_config(cls) -> "CacheSettings":
        return cls(
            redis_url=Config.REDIS_URL,
            ttl_seconds=Config.CACHE_TTL_SECONDS,
            connect_timeout_seconds=float(Config.REDIS_CONNECT_TIMEOUT),
            reconnect_policy=ReconnectPolicy.from_milliseconds(
                Config.REDIS_RECONNECT_BASE_DELAY_MS,
                Config.REDIS_RECONNECT_MAX_DELAY_MS,
                Config.REDIS_RECONNECT_MAX_ATTEMPTS,
            ),
            max_retries_per_request=Config.REDIS_MAX_RETRIES_PER_REQUEST,
            health_check_interval_seconds=float(Config.REDIS_HEALTH_CHECK_INTERVAL),
            fallback_max_entries=Config.CACHE_FALLBACK_MAX_ENTRIES,
            fallback_sweep_interval_seconds=float(Config.CACHE_FALLBACK_SWEEP_INTERVAL),
        )

    def with_overrides(self, **changes) -> "CacheSettings":
        return replace(self, **changes)
