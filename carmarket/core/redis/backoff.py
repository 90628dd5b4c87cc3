"""
Reconnect backoff policy for the remote cache.

Purpose
-------
Decide how long to wait between reconnect attempts and when to stop trying.

Two consumers share one curve:
- ConnectionMonitor sleeps ``ReconnectPolicy.delay_for(attempt)`` between
  reconnect attempts and stops once ``exhausted(attempt)`` is true.
- redis-py's per-command ``Retry`` uses ``CappedLinearBackoff`` so the client's
  own retries follow the same timing.

Architecture Notes
------------------
- delay = min(attempt * base_delay, max_delay), attempt is 1-indexed
- Defaults: 100 ms step, 3 s ceiling, 20 attempts
- No jitter: a single process owns a single connection, so there is no herd
  to spread out
"""

from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """
    Capped linear backoff with a fixed attempt budget.

    Attributes
    ----------
    base_delay:
        Seconds added per attempt.
    max_delay:
        Ceiling on any single delay, in seconds.
    max_attempts:
        Reconnect attempts before giving up. 0 disables reconnecting.
    """

    base_delay: float = 0.1
    max_delay: float = 3.0
    max_attempts: int = 20

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """
        Seconds to wait before reconnect attempt ``attempt``.

        >>> ReconnectPolicy().delay_for(3)
        0.3
        >>> ReconnectPolicy().delay_for(50)
        3.0
        """
        if attempt < 1:
            raise ValueError("attempt is 1-indexed")
        return min(round(attempt * self.base_delay, 6), self.max_delay)

    def exhausted(self, attempt: int) -> bool:
        """True once ``attempt`` exceeds the budget."""
        return attempt > self.max_attempts

    @classmethod
    def from_milliseconds(
        cls,
        base_delay_ms: int,
        max_delay_ms: int,
        max_attempts: int,
    ) -> "ReconnectPolicy":
        return cls(
            base_delay=base_delay_ms / 1000.0,
            max_delay=max_delay_ms / 1000.0,
            max_attempts=max_attempts,
        )


class CappedLinearBackoff(AbstractBackoff):
    """redis-py backoff strategy following ``ReconnectPolicy.delay_for``."""

    def __init__(self, policy: ReconnectPolicy) -> None:
        self._policy = policy

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        return self._policy.delay_for(max(failures, 1))


def build_client_retry(policy: ReconnectPolicy, retries: int) -> Retry:
    """
    Per-command retry object for the redis client.

    Only transport errors are retried; everything else surfaces on the first
    failure so the accessor can fall back.
    """
    return Retry(
        CappedLinearBackoff(policy),
        retries,
        supported_errors=(RedisConnectionError, RedisTimeoutError, OSError),
    )
