"""Continuous-refill token bucket, one per provider."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

DEFAULT_RATE = 10.0
DEFAULT_BURST = 20


class TokenBucket:
    """
    Token bucket rate limiter.

    The bucket starts full. Tokens refill at ``rate`` per second up to
    ``burst``, computed from elapsed time on every call.

    Args:
        rate: Tokens added per second
        burst: Bucket capacity
        clock: Monotonic time source (injectable for tests)

    Example:
        >>> bucket = TokenBucket(rate=1, burst=2)
        >>> bucket.allow(), bucket.allow(), bucket.allow()
        (True, True, False)
    """

    def __init__(
        self,
        rate: float = DEFAULT_RATE,
        burst: int = DEFAULT_BURST,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last_refill = now

    def allow(self) -> bool:
        """Consume one token if available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def has_spare(self, reserve: float = 1.0) -> bool:
        """True when more than ``reserve`` tokens are available (nothing is consumed)."""
        with self._lock:
            self._refill()
            return self._tokens > reserve

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens


__all__ = ["DEFAULT_BURST", "DEFAULT_RATE", "TokenBucket"]
