"""
Per-provider circuit breaker.

States: closed -> open after ``threshold`` consecutive failures; open ->
half_open once ``reset_timeout`` has elapsed since the last failure; a single
probe is admitted in half_open, and its outcome closes or re-opens the
circuit.

Example:
    >>> breaker = CircuitBreaker(threshold=2, reset_timeout=30)
    >>> breaker.record_failure(); breaker.record_failure()
    >>> breaker.state
    <BreakerState.OPEN: 'open'>
    >>> breaker.allow()
    False
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import Enum

DEFAULT_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT = 30.0


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Transitions are atomic under the breaker's own lock.

    Args:
        threshold: Consecutive failures that open the circuit
        reset_timeout: Seconds an open circuit waits before admitting a probe
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if reset_timeout <= 0:
            raise ValueError("reset_timeout must be positive")
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._last_failure: float | None = None
        self._probe_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    def allow(self) -> bool:
        """
        Ask to make a call.

        Returns False while open. The first call after the reset timeout
        moves the breaker to half_open and is admitted as the probe; further
        calls are refused until the probe reports back.
        """
        with self._lock:
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.OPEN:
                last = self._last_failure
                if last is not None and self._clock() - last < self.reset_timeout:
                    return False
                self._state = BreakerState.HALF_OPEN
                self._probe_in_flight = True
                return True
            # half_open
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._failures = 0
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure = self._clock()
            self._probe_in_flight = False
            if self._state == BreakerState.HALF_OPEN or self._failures >= self.threshold:
                self._state = BreakerState.OPEN

    def release_probe(self) -> None:
        """Give back an admitted probe without recording an outcome."""
        with self._lock:
            self._probe_in_flight = False

    def reset(self) -> None:
        self.record_success()

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "state": self._state.value,
                "failures": self._failures,
                "threshold": self.threshold,
                "reset_timeout": self.reset_timeout,
            }


__all__ = ["BreakerState", "CircuitBreaker", "DEFAULT_RESET_TIMEOUT", "DEFAULT_THRESHOLD"]
