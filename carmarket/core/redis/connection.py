"""
RedisConnection: the remote cache handle and its lifecycle events.

Purpose
-------
Own the single ``redis.asyncio.Redis`` client used by a cache accessor and
translate what happens to it into ConnectionState transitions.

Responsibilities
----------------
- Build the client from ``CacheSettings`` (URL, connect timeout, per-command
  retry with the capped backoff curve)
- Probe reachability with PING inside a bounded connect timeout
- Expose event handlers (ready, error, reconnecting, end) as the only code
  paths that mutate ConnectionState
- Close the client on shutdown

Non-Responsibilities
--------------------
- Deciding when to reconnect (see monitor.py)
- Cache semantics, fallback, serialization (see carmarket.core.cache)

Architecture Notes
------------------
- One client per connection object for the process lifetime; no per-request
  clients. The redis-py pool re-dials sockets on its own, so reconnecting is
  a matter of probing the same handle again.
- The handle exists from CONNECTING onward, so CONNECTED can never be
  reached without one.
- Nothing here raises connection failures to callers: they become
  CacheConnectionError objects that are logged and turned into DEGRADED.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]

from carmarket.core.exceptions import (
    CacheConnectionError,
    CacheOperationError,
    ErrorSeverity,
    InvalidStateTransition,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from carmarket.core.logging.logger import get_logger
from carmarket.core.redis.backoff import build_client_retry
from carmarket.core.redis.state import ConnectionState, ConnectionStateMachine

if TYPE_CHECKING:
    from carmarket.core.cache.settings import CacheSettings

logger = get_logger(__name__)

ClientFactory = Callable[["CacheSettings"], AsyncRedis]
RemoteFailure = Union[CacheConnectionError, CacheOperationError]

_SEVERITY_LEVELS: Dict[ErrorSeverity, int] = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def default_client_factory(settings: "CacheSettings") -> AsyncRedis:
    """Build the production redis client for ``settings``."""
    return AsyncRedis.from_url(
        settings.redis_url,
        socket_connect_timeout=settings.connect_timeout_seconds,
        socket_keepalive=True,
        decode_responses=True,
        retry=build_client_retry(
            settings.reconnect_policy,
            settings.max_retries_per_request,
        ),
        health_check_interval=int(settings.health_check_interval_seconds),
    )


class RedisConnection:
    """
    Remote cache handle plus the state machine describing its reachability.

    Example
    -------
    >>> connection = RedisConnection(CacheSettings(redis_url="redis://cache:6379/0"))
    >>> await connection.open()
    True
    >>> connection.state
    <ConnectionState.CONNECTED: 'CONNECTED'>
    """

    def __init__(
        self,
        settings: "CacheSettings",
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self._settings = settings
        self._client_factory: ClientFactory = client_factory or default_client_factory
        self._client: Optional[AsyncRedis] = None
        self._state_machine = ConnectionStateMachine()
        self._last_error: Optional[Dict[str, Any]] = None
        self._opened = False

    # ═══════════════════════════════════════════════════════════════════════
    # STATE ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> ConnectionState:
        return self._state_machine.state

    @property
    def state_machine(self) -> ConnectionStateMachine:
        return self._state_machine

    @property
    def settings(self) -> "CacheSettings":
        return self._settings

    def is_configured(self) -> bool:
        return self._settings.remote_configured

    def is_connected(self) -> bool:
        return self._state_machine.is_connected()

    def has_client(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> AsyncRedis:
        """
        Return the live client.

        Raises
        ------
        RuntimeError
            If no client handle exists (never configured, or closed).
        """
        if self._client is None:
            raise RuntimeError(
                "Remote cache client not available. "
                "Call `await RedisConnection.open()` with a REDIS_URL first."
            )
        return self._client

    @property
    def last_error(self) -> Optional[Dict[str, Any]]:
        return self._last_error

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    async def open(self) -> bool:
        """
        Run the initial connect attempt.

        Returns
        -------
        bool
            True if the remote cache is connected afterwards. False when no
            URL is configured or the first attempt failed (state DEGRADED).
        """
        if self._opened:
            return self.is_connected()
        self._opened = True

        if not self.is_configured():
            logger.info(
                "REDIS_URL not configured, using in-memory cache only",
                extra={"state": self.state.value},
            )
            return False

        logger.info(
            "Initializing remote cache connection",
            extra={
                "url_scheme": self._settings.url_scheme,
                "connect_timeout_seconds": self._settings.connect_timeout_seconds,
            },
        )

        self._state_machine.transition(ConnectionState.CONNECTING, "initialize")

        try:
            self._client = self._client_factory(self._settings)
        except Exception as exc:
            # Malformed URL or unsupported options; there is nothing to retry.
            self.on_error(CacheConnectionError("connect", exc))
            return False

        return await self.probe("connect")

    async def probe(self, phase: str, attempt: Optional[int] = None) -> bool:
        """
        PING the remote store within the connect timeout.

        Fires ``on_ready`` on success and ``on_error`` on failure.
        """
        client = self._client
        if client is None:
            self.on_error(
                CacheConnectionError(phase, RuntimeError("no client handle"), attempt)
            )
            return False

        start_time = time.monotonic()
        try:
            await asyncio.wait_for(
                client.ping(),
                timeout=self._settings.connect_timeout_seconds,
            )
        except Exception as exc:
            self.on_error(CacheConnectionError(phase, exc, attempt))
            return False

        latency_ms = (time.monotonic() - start_time) * 1000
        self.on_ready(phase, latency_ms)
        return True

    async def close(self) -> None:
        """
        Close the client and move to DISCONNECTED.

        Safe to call when never opened. Close errors are logged only.
        """
        client = self._client
        self._client = None
        self.on_end("close")

        if client is None:
            return

        try:
            await client.aclose()
            logger.info("Remote cache connection closed gracefully")
        except Exception as exc:
            logger.warning(
                "Error closing remote cache connection",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    # ═══════════════════════════════════════════════════════════════════════
    # EVENT HANDLERS
    # ═══════════════════════════════════════════════════════════════════════

    def on_ready(self, phase: str, latency_ms: float = 0.0) -> None:
        """The remote store answered; it becomes the active store."""
        if self.state in (ConnectionState.DISCONNECTED, ConnectionState.DEGRADED):
            # Closed, or a concurrent call failed, while the probe was in
            # flight. Only a reconnect attempt may leave DEGRADED.
            return
        if self._client is None:
            raise InvalidStateTransition(
                self.state.value,
                ConnectionState.CONNECTED.value,
                f"{phase} without a client handle",
            )

        self._last_error = None
        if self._state_machine.transition(ConnectionState.CONNECTED, phase):
            logger.info(
                "Remote cache ready for operations",
                extra={"phase": phase, "latency_ms": round(latency_ms, 2)},
            )
        else:
            logger.debug(
                "Remote cache health check passed",
                extra={"latency_ms": round(latency_ms, 2)},
            )

    def on_error(self, error: RemoteFailure) -> None:
        """
        A connect attempt or a remote call failed.

        CONNECTING and CONNECTED both fall to DEGRADED. Errors after close()
        are logged and otherwise ignored.
        """
        self._last_error = error.to_dict()
        logger.log(
            _SEVERITY_LEVELS[get_error_severity(error)],
            "Remote cache error, serving from in-memory fallback",
            extra={
                "state": self.state.value,
                "error_code": error.error_code,
                "error": error.message,
                "details": error.details,
                "retryable": is_transient_error(error),
                "alert": should_alert(error),
            },
        )

        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            self._state_machine.transition(ConnectionState.DEGRADED, error.error_code)

    def on_reconnecting(self, attempt: int, delay_seconds: float) -> None:
        """A reconnect attempt is starting (DEGRADED -> CONNECTING)."""
        logger.info(
            "Remote cache reconnecting",
            extra={"attempt": attempt, "delay_seconds": round(delay_seconds, 3)},
        )
        self._state_machine.transition(
            ConnectionState.CONNECTING, f"reconnect attempt {attempt}"
        )

    def on_end(self, reason: str) -> None:
        """The connection was shut down on purpose."""
        if self.state is ConnectionState.DISCONNECTED:
            return
        logger.warning("Remote cache connection ended", extra={"reason": reason})
        self._state_machine.transition(ConnectionState.DISCONNECTED, reason)

    # ═══════════════════════════════════════════════════════════════════════
    # INTROSPECTION
    # ═══════════════════════════════════════════════════════════════════════

    async def memory_info(self) -> Dict[str, Any]:
        """INFO memory from the remote store. Raises on failure."""
        info = await self.client.info("memory")
        return dict(info)

    def get_status(self) -> Dict[str, Any]:
        return {
            "configured": self.is_configured(),
            "url_scheme": self._settings.url_scheme,
            "has_client": self.has_client(),
            "last_error": self._last_error,
            **self._state_machine.snapshot(),
        }
