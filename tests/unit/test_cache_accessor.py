"""
Unit tests for CacheAccessor.

Covers path selection (Redis vs in-memory fallback), degradation on remote
failures, TTL on the fallback path, pattern clears, stats and lifecycle.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from carmarket.core.cache.accessor import CacheAccessor, CacheStats
from carmarket.core.cache.keys import filter_options_key, listings_key
from carmarket.core.exceptions import CacheSerializationError
from carmarket.core.redis.state import ConnectionState


@pytest.mark.asyncio
class TestWithoutRedis:
    """No REDIS_URL: everything is served from the in-memory map."""

    async def test_set_then_get_round_trip(self, local_cache):
        """A value written without Redis reads back equal."""
        await local_cache.set("a", {"x": 1})

        assert await local_cache.get("a") == {"x": 1}

    async def test_stats_report_fallback_only(self, local_cache):
        """Stats show no remote and list the fallback keys."""
        await local_cache.set("a", {"x": 1})

        stats = await local_cache.stats()

        assert stats.remote_connected is False
        assert stats.remote_available is False
        assert stats.state == "DISCONNECTED"
        assert "a" in stats.fallback_keys
        assert stats.fallback_size == 1
        assert stats.remote_info is None

    async def test_state_stays_disconnected(self, local_cache):
        """Without a descriptor the accessor never tries to connect."""
        assert local_cache.state is ConnectionState.DISCONNECTED
        assert local_cache.monitor is None

    async def test_reconnect_is_noop(self, local_cache):
        """reconnect() has nothing to do without a descriptor."""
        assert await local_cache.reconnect() is False
        assert local_cache.state is ConnectionState.DISCONNECTED

    async def test_stats_before_initialize(self, local_settings):
        """stats() never raises, even before initialize()."""
        cache = CacheAccessor(local_settings)

        stats = await cache.stats()

        assert stats.remote_available is False
        assert stats.fallback_size == 0

    async def test_entry_expires_after_ttl(self, local_cache, fake_clock):
        """Fallback entries vanish once their age reaches the TTL."""
        await local_cache.set("listing:7", {"id": 7})

        fake_clock.advance(299)
        assert await local_cache.get("listing:7") == {"id": 7}

        fake_clock.advance(1)
        assert await local_cache.get("listing:7") is None
        assert "listing:7" not in local_cache.fallback

    async def test_clear_all(self, local_cache):
        """clear('*') empties the fallback map."""
        await local_cache.set("a", 1)
        await local_cache.set("b", 2)

        await local_cache.clear("*")

        assert await local_cache.get("a") is None
        assert await local_cache.get("b") is None

    async def test_clear_by_substring(self, local_cache):
        """clear('listings') drops listing pages and keeps filter options."""
        await local_cache.set("listings:page1", [1, 2])
        await local_cache.set("filters:options", {"brands": ["Audi"]})

        await local_cache.clear("listings")

        assert await local_cache.get("listings:page1") is None
        assert await local_cache.get("filters:options") == {"brands": ["Audi"]}

    async def test_clear_strips_wildcards_for_fallback(self, local_cache):
        """'listings:*' behaves as the substring 'listings:' on the fallback map."""
        await local_cache.set(listings_key({"brand": "BMW"}), [])
        await local_cache.set(filter_options_key(), {})

        await local_cache.clear("listings:*")

        assert local_cache.fallback.keys() == [filter_options_key()]

    async def test_fallback_copy_is_isolated(self, local_cache):
        """Mutating the original value after set() does not change the cache."""
        page = {"items": [1, 2]}
        await local_cache.set("listings:page1", page)

        page["items"].append(3)

        assert await local_cache.get("listings:page1") == {"items": [1, 2]}

    async def test_returned_value_is_isolated(self, local_cache):
        """Mutating a value returned by get() does not change the cache."""
        await local_cache.set("listings:page1", {"items": [1]})

        (await local_cache.get("listings:page1"))["items"].append(2)

        assert await local_cache.get("listings:page1") == {"items": [1]}


@pytest.mark.asyncio
class TestConnected:
    """Redis reachable: it is the only store written."""

    async def test_initialize_connects(self, connected_cache):
        """A successful first PING ends in CONNECTED."""
        assert connected_cache.state is ConnectionState.CONNECTED

    async def test_set_goes_to_redis_only(self, connected_cache, fake_redis):
        """Remote writes carry the TTL and skip the fallback map."""
        await connected_cache.set("b", [1, 2, 3])

        assert fake_redis.store["b"] == "[1,2,3]"
        assert fake_redis.expirations["b"] == 300
        assert connected_cache.fallback.size() == 0
        assert await connected_cache.get("b") == [1, 2, 3]

    async def test_remote_value_gone_after_disconnect(self, connected_cache, fake_redis):
        """A value stored only in Redis is unreachable once Redis drops."""
        await connected_cache.set("b", [1, 2, 3])

        fake_redis.failing = True

        assert await connected_cache.get("b") is None
        assert connected_cache.state is ConnectionState.DEGRADED

    async def test_failed_set_lands_in_fallback(self, connected_cache, fake_redis, fake_clock):
        """A remote write error degrades and writes the fallback map instead."""
        fake_redis.failing = True

        await connected_cache.set("users:42:listings", [{"id": 1}])

        assert connected_cache.state is ConnectionState.DEGRADED
        assert await connected_cache.get("users:42:listings") == [{"id": 1}]

        fake_clock.advance(300)
        assert await connected_cache.get("users:42:listings") is None

    async def test_remote_miss_checks_fallback(self, connected_cache, fake_redis):
        """Entries written during an outage stay readable after recovery."""
        fake_redis.failing = True
        await connected_cache.set("filters:options", {"brands": ["Audi"]})

        fake_redis.failing = False
        assert await connected_cache.reconnect() is True

        assert await connected_cache.get("filters:options") == {"brands": ["Audi"]}
        assert connected_cache.metrics.get_metrics()["fallback_hits"] == 1

    async def test_invalid_json_payload_is_a_miss(self, connected_cache, fake_redis):
        """Garbage in Redis is logged and counted, but does not degrade."""
        fake_redis.store["listing:9"] = "{not json"

        assert await connected_cache.get("listing:9") is None
        assert connected_cache.state is ConnectionState.CONNECTED
        assert connected_cache.metrics.get_metrics()["decode_errors"] == 1

    async def test_clear_pattern_on_redis(self, connected_cache, fake_redis):
        """clear() deletes matching Redis keys with glob semantics."""
        await connected_cache.set("listings:page1", [1])
        await connected_cache.set("listings:page2", [2])
        await connected_cache.set("filters:options", {})

        await connected_cache.clear("listings:*")

        assert sorted(fake_redis.store) == ["filters:options"]

    async def test_clear_all_then_get(self, connected_cache):
        """clear('*') then get() returns None."""
        await connected_cache.set("a", 1)

        await connected_cache.clear()

        assert await connected_cache.get("a") is None

    async def test_clear_error_degrades(self, connected_cache, fake_redis):
        """A failing KEYS is absorbed and degrades the connection."""
        fake_redis.failing = True

        await connected_cache.clear("*")

        assert connected_cache.state is ConnectionState.DEGRADED

    async def test_stats_include_memory_info(self, connected_cache):
        """INFO memory is reported while connected."""
        stats = await connected_cache.stats()

        assert stats.remote_connected is True
        assert stats.remote_available is True
        assert stats.remote_info["used_memory_human"] == "1.00M"

    async def test_stats_omit_info_on_error(self, connected_cache, fake_redis, mocker):
        """A failing INFO leaves remote_info out and keeps the connection."""
        mocker.patch.object(
            fake_redis,
            "info",
            new=mocker.AsyncMock(side_effect=RedisConnectionError("reset by peer")),
        )

        stats = await connected_cache.stats()

        assert stats.remote_info is None
        assert "remote_info" not in stats.to_dict()
        assert stats.state == "CONNECTED"
        assert stats.remote_connected is True
        assert stats.metrics["remote_errors"] == 1


@pytest.mark.asyncio
class TestDegradedStart:
    """Redis configured but unreachable at startup."""

    async def test_initialize_does_not_raise(self, degraded_cache):
        """A failed first connect ends in DEGRADED."""
        assert degraded_cache.state is ConnectionState.DEGRADED
        assert degraded_cache.connection.last_error["error_code"] == "CACHE_CONNECTION_ERROR"

    async def test_operations_use_fallback(self, degraded_cache, fake_redis):
        """Reads and writes go to the fallback map without touching Redis."""
        commands_before = list(fake_redis.commands)

        await degraded_cache.set("a", {"x": 1})

        assert await degraded_cache.get("a") == {"x": 1}
        assert fake_redis.commands == commands_before

    async def test_reconnect_restores_connected(self, degraded_cache, fake_redis):
        """reconnect() probes again and returns to CONNECTED."""
        fake_redis.failing = False

        assert await degraded_cache.reconnect() is True
        assert degraded_cache.state is ConnectionState.CONNECTED

    async def test_reconnect_while_still_down(self, degraded_cache):
        """A failed reconnect attempt goes back to DEGRADED."""
        assert await degraded_cache.reconnect() is False
        assert degraded_cache.state is ConnectionState.DEGRADED

    async def test_factory_error_degrades(self, remote_settings):
        """A client factory error (bad URL) is absorbed as DEGRADED."""

        def broken_factory(settings):
            raise ValueError("Redis URL must specify one of the following schemes")

        cache = CacheAccessor(remote_settings, client_factory=broken_factory)
        await cache.initialize()

        assert cache.state is ConnectionState.DEGRADED
        assert (await cache.stats()).remote_available is False
        await cache.close()


@pytest.mark.asyncio
class TestValidation:
    """Caller errors that do reach the caller."""

    @pytest.mark.parametrize("value", [{"when": object()}, float("nan"), (1, 2), {1: "a"}])
    async def test_unserializable_value_raises(self, local_cache, value):
        """Values that do not survive a JSON round trip are rejected."""
        with pytest.raises(CacheSerializationError):
            await local_cache.set("bad", value)

        assert local_cache.fallback.size() == 0

    async def test_unserializable_value_raises_when_connected(self, connected_cache, fake_redis):
        """Serialization is checked before any Redis call."""
        with pytest.raises(CacheSerializationError):
            await connected_cache.set("bad", {"when": object()})

        assert "SET" not in fake_redis.commands
        assert connected_cache.state is ConnectionState.CONNECTED

    @pytest.mark.parametrize("key", ["", None, 42])
    async def test_invalid_key_rejected(self, local_cache, key):
        with pytest.raises(ValueError):
            await local_cache.get(key)
        with pytest.raises(ValueError):
            await local_cache.set(key, 1)


@pytest.mark.asyncio
class TestLifecycle:
    """initialize / close / get_or_set."""

    async def test_initialize_is_idempotent(self, remote_settings, fake_redis, mocker):
        factory = mocker.Mock(return_value=fake_redis)
        cache = CacheAccessor(remote_settings, client_factory=factory)

        await cache.initialize()
        await cache.initialize()

        factory.assert_called_once()
        await cache.close()

    async def test_close_disconnects_and_keeps_fallback(self, degraded_cache, fake_redis):
        """close() ends in DISCONNECTED and fallback data survives."""
        await degraded_cache.set("a", 1)

        await degraded_cache.close()

        assert degraded_cache.state is ConnectionState.DISCONNECTED
        assert fake_redis.closed is True
        assert await degraded_cache.get("a") == 1
        assert (await degraded_cache.stats()).remote_available is False

    async def test_close_twice(self, connected_cache):
        await connected_cache.close()
        await connected_cache.close()

        assert connected_cache.state is ConnectionState.DISCONNECTED

    async def test_reconnect_after_close_is_ignored(self, connected_cache):
        await connected_cache.close()

        assert await connected_cache.reconnect() is False
        assert connected_cache.state is ConnectionState.DISCONNECTED

    async def test_get_or_set_loads_once(self, connected_cache, mocker):
        """The loader runs on the first miss only."""
        loader = mocker.AsyncMock(return_value={"brands": ["Audi", "BMW"]})

        first = await connected_cache.get_or_set("filters:options", loader)
        second = await connected_cache.get_or_set("filters:options", loader)

        assert first == second == {"brands": ["Audi", "BMW"]}
        loader.assert_awaited_once()

    async def test_get_or_set_does_not_cache_none(self, local_cache, mocker):
        loader = mocker.AsyncMock(return_value=None)

        assert await local_cache.get_or_set("listing:404", loader) is None
        assert await local_cache.get_or_set("listing:404", loader) is None

        assert loader.await_count == 2
        assert local_cache.fallback.size() == 0


@pytest.mark.asyncio
class TestStatsAndMetrics:
    async def test_metrics_count_paths(self, connected_cache, fake_redis):
        await connected_cache.set("a", 1)
        await connected_cache.get("a")
        await connected_cache.get("missing")

        fake_redis.failing = True
        await connected_cache.set("b", 2)
        await connected_cache.get("b")

        metrics = (await connected_cache.stats()).metrics
        assert metrics["remote_sets"] == 1
        assert metrics["remote_hits"] == 1
        assert metrics["fallback_sets"] == 1
        assert metrics["fallback_hits"] == 1
        assert metrics["misses"] == 1
        assert metrics["remote_errors"] == 1
        assert metrics["degradations"] == 1

    async def test_state_transitions_counted(self, connected_cache):
        """DISCONNECTED -> CONNECTING -> CONNECTED is two transitions."""
        metrics = (await connected_cache.stats()).metrics

        assert metrics["state_transitions"] == 2

    async def test_to_dict_is_plain_data(self, connected_cache):
        data = (await connected_cache.stats()).to_dict()

        assert data["state"] == "CONNECTED"
        assert data["remote_info"]["used_memory"] == 1048576
        assert isinstance(data["metrics"], dict)


def test_cache_stats_defaults():
    stats = CacheStats(
        remote_connected=False,
        remote_available=False,
        state="DISCONNECTED",
        fallback_size=0,
    )

    assert stats.fallback_keys == []
    assert "remote_info" not in stats.to_dict()
