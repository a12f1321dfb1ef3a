"""
Circuit breaker for Redis event publishing.

When Redis is down, publishing fails fast instead of paying the socket
timeout on every committed order. Also provides the jittered backoff used
between publish retries.
"""

from __future__ import annotations

import random
import threading
import time
from enum import Enum

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Publishing skipped
    HALF_OPEN = "half_open"  # Probing recovery


class EventCircuitBreaker:
    """
    Thread-safe circuit breaker shared by every request thread that publishes.

    Opens after ``failure_threshold`` consecutive failed publishes, stays open
    for ``recovery_timeout`` seconds, then lets up to ``half_open_max_calls``
    trial calls through. One successful trial call closes it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        clock=time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0
        self._half_open_calls = 0
        self._rejected_count = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def can_execute(self) -> bool:
        """Return True if a publish attempt may proceed."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at >= self._recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    self._half_open_calls = 1
                    logger.info("Event circuit breaker transitioning to HALF_OPEN")
                    return True
                self._rejected_count += 1
                return False

            # HALF_OPEN
            if self._half_open_calls >= self._half_open_max_calls:
                self._rejected_count += 1
                return False
            self._half_open_calls += 1
            return True

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._trip()
                logger.error("Event circuit breaker OPEN (half-open trial call failed)")
            elif self._state == CircuitState.CLOSED and self._failure_count >= self._failure_threshold:
                self._trip()
                logger.error(
                    "Event circuit breaker OPEN",
                    failure_count=self._failure_count,
                    threshold=self._failure_threshold,
                )

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("Event circuit breaker recovered to CLOSED")
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def reset(self) -> None:
        """Force the breaker closed (used on shutdown and in tests)."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._half_open_calls = 0

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "state": self._state.value,
                "failure_count": self._failure_count,
                "rejected_count": self._rejected_count,
            }

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_calls = 0


_event_circuit_breaker: EventCircuitBreaker | None = None
_circuit_breaker_lock = threading.Lock()


def get_event_circuit_breaker() -> EventCircuitBreaker:
    """Get or create the process-wide publishing circuit breaker."""
    global _event_circuit_breaker
    if _event_circuit_breaker is None:
        with _circuit_breaker_lock:
            if _event_circuit_breaker is None:
                _event_circuit_breaker = EventCircuitBreaker(
                    failure_threshold=settings.redis_publish_max_retries + 2,
                    recovery_timeout=30.0,
                    half_open_max_calls=3,
                )
    return _event_circuit_breaker


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.5, max_delay: float = 10.0) -> float:
    """
    Exponential backoff with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Upper bound on the exponential component

    Returns:
        A delay uniformly drawn between ``base_delay`` and the capped exponential delay.
    """
    exp_delay = min(base_delay * (2 ** attempt), max_delay)
    return random.uniform(base_delay, max(base_delay, exp_delay))
