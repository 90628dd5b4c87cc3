"""
Remote cache (Redis) connectivity for the CarMarket cache layer.

Exports
-------
RedisConnection - Single client handle plus lifecycle event handlers
ConnectionMonitor - Health pings and capped-backoff reconnects
ConnectionState / ConnectionStateMachine - Explicit reachability states
ReconnectPolicy / CappedLinearBackoff - Backoff curve shared with redis-py
"""

from carmarket.core.redis.backoff import (
    CappedLinearBackoff,
    ReconnectPolicy,
    build_client_retry,
)
from carmarket.core.redis.connection import RedisConnection, default_client_factory
from carmarket.core.redis.monitor import ConnectionMonitor
from carmarket.core.redis.state import ConnectionState, ConnectionStateMachine

__all__ = [
    "RedisConnection",
    "default_client_factory",
    "ConnectionMonitor",
    "ConnectionState",
    "ConnectionStateMachine",
    "ReconnectPolicy",
    "CappedLinearBackoff",
    "build_client_retry",
]
