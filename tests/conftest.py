"""
Pytest Configuration and Fixtures for the CarMarket cache tests
===============================================================

Purpose
-------
Shared fixtures for the cache layer test suite.

Responsibilities
----------------
- In-memory FakeRedis with a switchable failure mode (unit tests)
- Controllable monotonic clock for TTL tests
- CacheAccessor fixtures for the connected, degraded and no-Redis modes
- Testcontainers Redis for integration tests

Architecture Notes
------------------
- Unit tests use FakeRedis (fast, isolated, no Docker)
- Integration tests use testcontainers (real Redis) and are skipped when
  Docker is not available
- Accessor fixtures run with ``auto_reconnect=False`` so no background
  monitor races the assertions; monitor tests opt in explicitly
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
from typing import Any, AsyncGenerator, Dict, Generator, List, Optional

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from carmarket.core.cache.accessor import CacheAccessor  # noqa: E402
from carmarket.core.cache.settings import CacheSettings  # noqa: E402
from carmarket.core.logging.logger import get_logger  # noqa: E402
from carmarket.core.redis.backoff import ReconnectPolicy  # noqa: E402

logger = get_logger(__name__)

FAKE_REDIS_URL = "redis://fake-redis:6379/0"


# ============================================================================
# FAKES
# ============================================================================


class FakeRedis:
    """
    Async stand-in for ``redis.asyncio.Redis`` (decode_responses=True).

    Set ``failing = True`` to make every command raise a redis
    ConnectionError, as a dropped connection would.
    """

    def __init__(self) -> None:
        self.store: Dict[str, str] = {}
        self.expirations: Dict[str, Optional[int]] = {}
        self.failing: bool = False
        self.ping_delay: float = 0.0
        self.closed: bool = False
        self.commands: List[str] = []

    def _command(self, name: str) -> None:
        self.commands.append(name)
        if self.failing:
            raise RedisConnectionError("Error 111 connecting to fake-redis:6379. Connection refused.")

    async def ping(self) -> bool:
        self._command("PING")
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        return True

    async def get(self, key: str) -> Optional[str]:
        self._command("GET")
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._command("SET")
        self.store[key] = value
        self.expirations[key] = ex
        return True

    async def keys(self, pattern: str = "*") -> List[str]:
        self._command("KEYS")
        return [key for key in self.store if fnmatch.fnmatchcase(key, pattern)]

    async def delete(self, *keys: str) -> int:
        self._command("DEL")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expirations.pop(key, None)
        return removed

    async def info(self, section: Optional[str] = None) -> Dict[str, Any]:
        self._command("INFO")
        return {"used_memory": 1048576, "used_memory_human": "1.00M"}

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# UNIT FIXTURES
# ============================================================================


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote_settings() -> CacheSettings:
    """Settings pointing at FakeRedis, with fast reconnects and no monitor."""
    return CacheSettings(
        redis_url=FAKE_REDIS_URL,
        ttl_seconds=300,
        connect_timeout_seconds=0.5,
        reconnect_policy=ReconnectPolicy(base_delay=0.01, max_delay=0.05, max_attempts=3),
        health_check_interval_seconds=0.05,
        fallback_sweep_interval_seconds=0,
        auto_reconnect=False,
    )


@pytest.fixture
def local_settings() -> CacheSettings:
    """Settings without REDIS_URL (in-memory only)."""
    return CacheSettings(redis_url=None, ttl_seconds=300, fallback_sweep_interval_seconds=0)


@pytest_asyncio.fixture
async def connected_cache(
    remote_settings: CacheSettings,
    fake_redis: FakeRedis,
    fake_clock: FakeClock,
) -> AsyncGenerator[CacheAccessor, None]:
    """Accessor whose first connect succeeded (CONNECTED)."""
    cache = CacheAccessor(
        remote_settings, client_factory=lambda settings: fake_redis, clock=fake_clock
    )
    await cache.initialize()
    yield cache
    await cache.close()


@pytest_asyncio.fixture
async def degraded_cache(
    remote_settings: CacheSettings,
    fake_redis: FakeRedis,
    fake_clock: FakeClock,
) -> AsyncGenerator[CacheAccessor, None]:
    """Accessor whose first connect failed (DEGRADED)."""
    fake_redis.failing = True
    cache = CacheAccessor(
        remote_settings, client_factory=lambda settings: fake_redis, clock=fake_clock
    )
    await cache.initialize()
    yield cache
    await cache.close()


@pytest_asyncio.fixture
async def local_cache(
    local_settings: CacheSettings,
    fake_clock: FakeClock,
) -> AsyncGenerator[CacheAccessor, None]:
    """Accessor without REDIS_URL (DISCONNECTED for good)."""
    cache = CacheAccessor(local_settings, clock=fake_clock)
    await cache.initialize()
    yield cache
    await cache.close()


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def redis_container() -> Generator[Any, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    redis_module = pytest.importorskip("testcontainers.redis")

    logger.info("Starting Redis testcontainer...")
    container = redis_module.RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for Redis testcontainer: {exc}")

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture
def redis_url(redis_container: Any) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"
