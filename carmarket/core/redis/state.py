"""
Remote cache connection state machine.

Purpose
-------
Model the reachability of the remote cache as an explicit enum with a fixed
transition table instead of a loose "connected" flag toggled from several
event handlers.

Transitions
-----------
    DISCONNECTED -> CONNECTING      initialize() with a REDIS_URL
    CONNECTING   -> CONNECTED       ping succeeded
    CONNECTING   -> DEGRADED        connect attempt failed
    CONNECTED    -> DEGRADED        any runtime error
    DEGRADED     -> CONNECTING      reconnect event
    *            -> DISCONNECTED    close()

Same-state requests are no-ops. Anything else raises InvalidStateTransition.
Without a REDIS_URL the machine never leaves DISCONNECTED.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from carmarket.core.exceptions import InvalidStateTransition
from carmarket.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConnectionState(Enum):
    """Reachability of the remote cache."""

    DISCONNECTED = "DISCONNECTED"  # Never configured, or closed
    CONNECTING = "CONNECTING"  # Connect or reconnect attempt in flight
    CONNECTED = "CONNECTED"  # Remote is the active store
    DEGRADED = "DEGRADED"  # Remote given up for now, fallback is active


_ALLOWED_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.DEGRADED,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.DEGRADED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.DEGRADED: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}
    ),
}

StateListener = Callable[[ConnectionState, ConnectionState, str], None]


class ConnectionStateMachine:
    """
    Holds the current ConnectionState and enforces legal transitions.

    Listeners are called synchronously with ``(old, new, reason)`` after every
    effective change; the cache metrics use this to count transitions.
    """

    def __init__(self) -> None:
        self._state: ConnectionState = ConnectionState.DISCONNECTED
        self._changed_at: float = time.time()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def changed_at(self) -> float:
        return self._changed_at

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def can_transition(self, target: ConnectionState) -> bool:
        return target is self._state or target in _ALLOWED_TRANSITIONS[self._state]

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def transition(self, target: ConnectionState, reason: str) -> bool:
        """
        Move to ``target``.

        Returns
        -------
        bool
            True if the state changed, False for a same-state no-op.

        Raises
        ------
        InvalidStateTransition
            If the transition table does not allow the move.
        """
        current = self._state
        if target is current:
            return False

        if target not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(current.value, target.value, reason)

        self._state = target
        self._changed_at = time.time()

        log = logger.warning if target is ConnectionState.DEGRADED else logger.info
        log(
            "Remote cache state changed",
            extra={
                "old_state": current.value,
                "new_state": target.value,
                "reason": reason,
            },
        )

        for listener in list(self._listeners):
            try:
                listener(current, target, reason)
            except Exception as exc:
                logger.warning(
                    "Connection state listener failed (non-critical)",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )

        return True

    def snapshot(self) -> Dict[str, Optional[object]]:
        return {
            "state": self._state.value,
            "changed_at": self._changed_at,
        }
