"""
Circuit breaker for calls to external services.

After ``failure_threshold`` consecutive failures the breaker opens and
rejects calls until ``recovery_timeout`` seconds have passed; the next call
is then let through as a probe, and its outcome closes or reopens it.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling through an open breaker."""


class CircuitBreaker:

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.clock = clock
        self.logger = get_logger(f"circuit_breaker.{name}")

        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self._opened_at = 0.0

    def _allow_call(self) -> bool:
        if self.state != CircuitBreakerState.OPEN:
            return True
        if self.clock() - self._opened_at < self.recovery_timeout:
            return False

        self.state = CircuitBreakerState.HALF_OPEN
        self.logger.info("Circuit breaker half-open, probing")
        return True

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func`` unless the breaker is open; any exception counts as a failure."""
        if not self._allow_call():
            raise CircuitBreakerOpenException(f"Circuit breaker '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def record_success(self):
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.logger.info("Circuit breaker closed after successful probe")
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN
            self._opened_at = self.clock()
            self.logger.warning(
                "Circuit breaker opened",
                failure_count=self.failure_count,
                threshold=self.failure_threshold
            )

    def is_open(self) -> bool:
        return self.state == CircuitBreakerState.OPEN
