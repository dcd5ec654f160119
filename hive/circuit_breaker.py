"""Circuit Breaker pattern for isolating unreachable agent endpoints."""

import time
from typing import Any, Awaitable, Callable, Optional
from enum import Enum
import logging

logger = logging.getLogger("hive.circuit_breaker")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Too many failures, blocking calls
    HALF_OPEN = "half_open"  # Testing if endpoint recovered


class CircuitBreakerOpen(Exception):
    """Raised instead of calling through while the circuit is OPEN."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Circuit breaker '{name}' is OPEN")


class CircuitBreaker:
    """
    Circuit Breaker guarding calls to one agent endpoint.

    - After `failure_threshold` consecutive failures → OPEN
    - After `recovery_timeout` seconds → HALF_OPEN (one probe call allowed)
    - Probe succeeds → CLOSED, probe fails → OPEN again
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute an async function through the breaker.

        Raises:
            CircuitBreakerOpen: circuit is OPEN and the recovery timeout
                has not elapsed yet
        """
        self.total_calls += 1

        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                logger.info(f"[CircuitBreaker:{self.name}] Transitioning OPEN → HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
            else:
                self.total_rejections += 1
                raise CircuitBreakerOpen(self.name)

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def get_state(self) -> str:
        return self.state.value

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return (self._clock() - self.last_failure_time) >= self.recovery_timeout

    def _on_success(self):
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"[CircuitBreaker:{self.name}] Recovery confirmed, HALF_OPEN → CLOSED")
        self.state = CircuitState.CLOSED
        self.failure_count = 0

    def _on_failure(self):
        self.total_failures += 1
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"[CircuitBreaker:{self.name}] Recovery failed, HALF_OPEN → OPEN")
            self.state = CircuitState.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.error(
                f"[CircuitBreaker:{self.name}] Failure threshold reached "
                f"({self.failure_count}/{self.failure_threshold}), CLOSED → OPEN"
            )
            self.state = CircuitState.OPEN

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "failure_count": self.failure_count,
        }
