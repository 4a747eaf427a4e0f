"""
Retry timing and the single retry loop used by the whole core.

Two policies:
    - ExponentialBackoff: for mutating calls and queries. Delays grow
      5ms, 25ms, 125ms, ... and each is scaled by a random jitter factor
      in [0, 1) so parallel clients do not hammer the node in lockstep.
    - FixedIntervalBackoff: for service-readiness polling, a constant
      interval bounded by a timeout.

A policy with ``max_attempts == K`` yields exactly K - 1 delays, so the
loop in ``retry()`` makes exactly K attempts before giving up.

Only ``LedgerError.retryable`` failures are retried. Anything else
propagates on the first occurrence.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from oct_cli.near.errors import LedgerError, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

# Defaults for mutating calls: 4 attempts, 5ms base, x5 growth.
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY = 0.005
DEFAULT_FACTOR = 5.0

# Readiness polling interval.
DEFAULT_POLL_INTERVAL = 0.5


class BackoffPolicy(Protocol):
    """Bounded schedule of delays between attempts."""

    @property
    def max_attempts(self) -> int: ...

    def delays(self) -> Iterator[float]:
        """Yield the delay (seconds) before each retry; max_attempts - 1 values."""
        ...


@dataclass(frozen=True)
class ExponentialBackoff:
    """Exponential growth with multiplicative jitter.

    Attributes:
        base_delay: Delay before the first retry, pre-jitter (seconds).
        factor: Growth factor between consecutive delays.
        max_attempts: Total attempts including the first.
        rng: Source of jitter. Inject ``random.Random(seed)`` in tests.
        jitter: Disable to get the bare exponential schedule.
    """

    base_delay: float = DEFAULT_BASE_DELAY
    factor: float = DEFAULT_FACTOR
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    rng: random.Random = field(default_factory=random.Random, compare=False)
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got: {self.base_delay}")
        if self.factor < 1:
            raise ValueError(f"factor must be >= 1, got: {self.factor}")

    def delays(self) -> Iterator[float]:
        delay = self.base_delay
        for _ in range(self.max_attempts - 1):
            yield delay * self.rng.random() if self.jitter else delay
            delay *= self.factor


@dataclass(frozen=True)
class FixedIntervalBackoff:
    """Constant delay between attempts."""

    interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int = 20

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got: {self.interval}")

    @classmethod
    def for_timeout(
        cls, timeout_secs: float, interval: float = DEFAULT_POLL_INTERVAL
    ) -> FixedIntervalBackoff:
        """Enough attempts at ``interval`` to cover ``timeout_secs``."""
        if timeout_secs <= 0:
            raise ValueError(f"timeout_secs must be > 0, got: {timeout_secs}")
        return cls(interval=interval, max_attempts=max(1, round(timeout_secs / interval)))

    def delays(self) -> Iterator[float]:
        for _ in range(self.max_attempts - 1):
            yield self.interval


async def retry(
    task: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    *,
    operation: str,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run ``task`` until it succeeds, fails fatally, or the policy runs out.

    Args:
        task: Zero-argument coroutine factory. Called once per attempt, so
            anything it builds (nonces, envelopes) is built fresh.
        policy: Attempt bound and delay schedule.
        operation: Short label for logs and the exhaustion error.
        sleep: Awaitable sleep. Inject a recorder in tests.

    Returns:
        Whatever the first successful attempt returned.

    Raises:
        LedgerError: A non-retryable failure, on its first occurrence.
        RetryExhausted: Every attempt failed with a retryable error.
    """
    delays = policy.delays()
    attempts = 0
    while True:
        attempts += 1
        try:
            return await task()
        except LedgerError as exc:
            if not exc.retryable:
                raise
            delay = next(delays, None)
            if delay is None:
                raise RetryExhausted(operation, attempts, exc) from exc
            logger.warning(
                "%s attempt %d/%d failed (%s): %s; retrying in %.3fs",
                operation,
                attempts,
                policy.max_attempts,
                exc.kind,
                exc.message,
                delay,
            )
            await sleep(delay)
