"""
Retry and circuit-breaking helpers for repository requests.

Used by the network-backed repositories only; the resolution core never retries.
"""

import asyncio
import logging
import random
import time
from collections import defaultdict
from enum import Enum

from package_resolver.core.config import ResolverConfig

logger = logging.getLogger(__name__)


class ExponentialBackoff:
    """Exponential backoff with ±25% jitter."""

    def __init__(self, base_delay: float = 1.0, max_delay: float = 60.0, max_retries: int = 3):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries

    @classmethod
    def from_config(cls, config: ResolverConfig) -> "ExponentialBackoff":
        return cls(max_retries=config.http_max_retries)

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        return max(0.0, delay + random.uniform(-0.25, 0.25) * delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries

    async def wait(self, attempt: int) -> float:
        """Sleep for the delay of ``attempt`` and return it."""
        delay = self.calculate_delay(attempt)
        await asyncio.sleep(delay)
        return delay


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling a repository after repeated failures.

    Once ``failure_threshold`` consecutive failures are recorded for a source the
    circuit opens and requests fail fast. After ``timeout`` seconds one trial request
    is let through (half-open); success closes the circuit, failure re-opens it.
    """

    def __init__(self, failure_threshold: int = 10, timeout: float = 300.0):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failures: dict[str, int] = defaultdict(int)
        self.opened_at: dict[str, float] = {}

    @classmethod
    def from_config(cls, config: ResolverConfig) -> "CircuitBreaker":
        return cls(failure_threshold=config.circuit_failure_threshold, timeout=config.circuit_timeout)

    def state(self, source: str) -> CircuitState:
        if source not in self.opened_at:
            return CircuitState.CLOSED
        if time.monotonic() - self.opened_at[source] > self.timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def record_failure(self, source: str) -> None:
        self.failures[source] += 1
        if self.state(source) is CircuitState.HALF_OPEN:
            self.opened_at[source] = time.monotonic()
            logger.warning(f"Circuit breaker re-opened for {source} after failed trial request")
        elif self.failures[source] >= self.failure_threshold and source not in self.opened_at:
            self.opened_at[source] = time.monotonic()
            logger.warning(f"Circuit breaker OPEN for {source} ({self.failures[source]} failures)")

    def record_success(self, source: str) -> None:
        self.failures[source] = 0
        if self.opened_at.pop(source, None) is not None:
            logger.info(f"Circuit breaker CLOSED for {source}")

    def is_open(self, source: str) -> bool:
        return self.state(source) is CircuitState.OPEN
