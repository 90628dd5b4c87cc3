"""
Connection monitor for the remote cache.

Purpose
-------
Background task that keeps ConnectionState honest between cache calls:

- CONNECTED: PING every ``health_check_interval_seconds``. A failed PING
  degrades the connection without waiting for a cache call to notice.
- DEGRADED: reconnect attempts with the capped backoff policy. Each attempt
  fires the reconnecting event (DEGRADED -> CONNECTING) and probes the same
  client handle. Success resets the attempt budget.
- Budget exhausted: log once and idle until ``request_reconnect()``.

Responsibilities
----------------
- Run and stop the asyncio task
- Count attempts and keep a short history of probe outcomes
- Expose a status snapshot for stats/health output

Non-Responsibilities
--------------------
- Mutating state directly (all changes go through RedisConnection handlers)
- Cache semantics

Architecture Notes
------------------
- Wakes early through a state listener when the connection degrades, so
  reconnecting starts right after a failed cache call rather than at the
  next health tick.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from carmarket.core.logging.logger import get_logger
from carmarket.core.redis.connection import RedisConnection
from carmarket.core.redis.state import ConnectionState

logger = get_logger(__name__)


class ConnectionMonitor:
    """
    Health pings while connected, capped-backoff reconnects while degraded.
    """

    def __init__(self, connection: RedisConnection) -> None:
        self._connection = connection
        self._policy = connection.settings.reconnect_policy
        self._check_interval = connection.settings.health_check_interval_seconds

        self._is_running: bool = False
        self._monitor_task: Optional[asyncio.Task] = None
        self._wake: asyncio.Event = asyncio.Event()

        self._attempt: int = 0
        self._gave_up: bool = False
        self._total_reconnects: int = 0
        self._check_history: Deque[Dict[str, Any]] = deque(maxlen=50)
        self._last_check_time: Optional[float] = None

        connection.state_machine.add_listener(self._on_state_change)

        logger.debug(
            "ConnectionMonitor initialized",
            extra={
                "check_interval_seconds": self._check_interval,
                "max_attempts": self._policy.max_attempts,
                "base_delay_seconds": self._policy.base_delay,
                "max_delay_seconds": self._policy.max_delay,
            },
        )

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """Start the monitoring background task."""
        if self._is_running:
            logger.warning("ConnectionMonitor already running")
            return

        self._is_running = True
        self._monitor_task = asyncio.create_task(
            self._monitor_loop(), name="carmarket-cache-monitor"
        )
        logger.info("ConnectionMonitor started")

    async def stop(self) -> None:
        """Stop the monitoring background task."""
        if not self._is_running:
            return

        self._is_running = False
        self._wake.set()

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        logger.info("ConnectionMonitor stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    def request_reconnect(self) -> None:
        """Reset the attempt budget and wake the loop (a reconnect event)."""
        self._attempt = 0
        self._gave_up = False
        self._wake.set()
        logger.info("Reconnect requested")

    # ═══════════════════════════════════════════════════════════════════════
    # MONITORING LOOP
    # ═══════════════════════════════════════════════════════════════════════

    def _on_state_change(
        self, old: ConnectionState, new: ConnectionState, reason: str
    ) -> None:
        if new is ConnectionState.DEGRADED or new is ConnectionState.DISCONNECTED:
            self._wake.set()

    async def _monitor_loop(self) -> None:
        logger.debug("Connection monitor loop started")

        while self._is_running:
            try:
                state = self._connection.state

                if state is ConnectionState.CONNECTED:
                    await self._watch_connected()
                elif state is ConnectionState.DEGRADED:
                    await self._reconnect_step()
                elif state is ConnectionState.DISCONNECTED:
                    logger.debug("Connection closed, monitor loop exiting")
                    break
                else:
                    # CONNECTING is owned by whoever fired the event.
                    await asyncio.sleep(self._policy.base_delay)

            except asyncio.CancelledError:
                logger.debug("Connection monitor loop cancelled")
                break

            except Exception as exc:
                logger.error(
                    "Error in connection monitor loop",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                await asyncio.sleep(self._check_interval)

        self._is_running = False

    async def _watch_connected(self) -> None:
        self._wake.clear()
        if self._connection.state is not ConnectionState.CONNECTED:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._check_interval)
            return
        except asyncio.TimeoutError:
            pass

        if self._connection.state is ConnectionState.CONNECTED:
            start = time.monotonic()
            passed = await self._connection.probe("health_check")
            self._record_check(passed, start)

    async def _reconnect_step(self) -> None:
        if self._gave_up:
            self._wake.clear()
            await self._wake.wait()
            return

        if not self._connection.has_client():
            self._gave_up = True
            logger.error(
                "Remote cache has no client handle, staying on in-memory fallback"
            )
            return

        self._attempt += 1
        if self._policy.exhausted(self._attempt):
            self._gave_up = True
            logger.error(
                "Remote cache: max reconnection attempts reached, "
                "staying on in-memory fallback",
                extra={"max_attempts": self._policy.max_attempts},
            )
            return

        delay = self._policy.delay_for(self._attempt)
        await asyncio.sleep(delay)

        if self._connection.state is not ConnectionState.DEGRADED:
            return

        self._connection.on_reconnecting(self._attempt, delay)
        start = time.monotonic()
        passed = await self._connection.probe("reconnect", self._attempt)
        self._record_check(passed, start)

        if passed:
            self._total_reconnects += 1
            logger.info(
                "Remote cache reconnected",
                extra={"attempts": self._attempt},
            )
            self._attempt = 0

    def _record_check(self, passed: bool, start: float) -> None:
        self._last_check_time = time.time()
        self._check_history.append(
            {
                "timestamp": self._last_check_time,
                "passed": passed,
                "latency_ms": round((time.monotonic() - start) * 1000, 2),
            }
        )

    # ═══════════════════════════════════════════════════════════════════════
    # STATUS API
    # ═══════════════════════════════════════════════════════════════════════

    def get_status(self) -> Dict[str, Any]:
        recent = list(self._check_history)[-20:]
        error_rate = (
            sum(1 for check in recent if not check["passed"]) / len(recent)
            if recent
            else 0.0
        )
        return {
            "is_running": self._is_running,
            "attempt": self._attempt,
            "gave_up": self._gave_up,
            "total_reconnects": self._total_reconnects,
            "last_check_time": self._last_check_time,
            "total_checks": len(self._check_history),
            "error_rate": round(error_rate, 3),
            "check_interval_seconds": self._check_interval,
        }
