"""Tests for the token bucket rate limiter."""

from typing import Any

import pytest

from zen.core.sync.rate_limiter import TokenBucket


class TestTokenBucket:
    """Tests for consumption and refill."""

    def test_burst_then_refused(self, clock: Any) -> None:
        """Test a full bucket admits exactly burst calls."""
        bucket = TokenBucket(rate=10, burst=20, clock=clock)
        assert all(bucket.allow() for _ in range(20))
        assert not bucket.allow()

    def test_refill_after_interval(self, clock: Any) -> None:
        """Test one token returns after 1/rate seconds."""
        bucket = TokenBucket(rate=10, burst=2, clock=clock)
        bucket.allow()
        bucket.allow()
        clock.advance(0.05)
        assert not bucket.allow()
        clock.advance(0.06)
        assert bucket.allow()

    def test_refill_capped_at_burst(self, clock: Any) -> None:
        """Test idle time never fills past capacity."""
        bucket = TokenBucket(rate=10, burst=3, clock=clock)
        clock.advance(3600)
        assert bucket.tokens == 3.0

    def test_has_spare(self, clock: Any) -> None:
        """Test has_spare does not consume tokens."""
        bucket = TokenBucket(rate=1, burst=2, clock=clock)
        assert bucket.has_spare()
        assert bucket.tokens == 2.0
        bucket.allow()
        assert not bucket.has_spare()

    @pytest.mark.parametrize(("rate", "burst"), [(0, 1), (-1, 5), (1, 0)])
    def test_invalid_parameters(self, rate: float, burst: int) -> None:
        """Test non-positive rate or burst is rejected."""
        with pytest.raises(ValueError):
            TokenBucket(rate=rate, burst=burst)
