"""Tests for the cancellation and deadline context."""

import threading
import time

import pytest

from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, ZenError


class TestContext:
    """Tests for Context cancellation and deadlines."""

    def test_background_never_done(self) -> None:
        """Test a background context is not done and has no deadline."""
        ctx = Context.background()
        assert not ctx.done()
        assert ctx.remaining() is None
        assert ctx.err() is None
        ctx.check()

    def test_cancel(self) -> None:
        """Test cancel marks the context done with a canceled error."""
        ctx = Context.background()
        ctx.cancel()
        assert ctx.done()
        with pytest.raises(ZenError) as exc_info:
            ctx.check()
        assert exc_info.value.code == ErrorCode.CANCELED
        assert exc_info.value.retryable is False

    def test_deadline_expires(self) -> None:
        """Test an expired deadline reports timeout."""
        ctx = Context.background().with_timeout(0.01)
        time.sleep(0.03)
        assert ctx.expired()
        assert ctx.err() is not None
        assert ctx.err().code == ErrorCode.TIMEOUT

    def test_zero_timeout_means_no_limit(self) -> None:
        """Test with_timeout(0) adds no deadline."""
        assert Context.background().with_timeout(0).deadline is None

    def test_child_sees_parent_cancel(self) -> None:
        """Test a child context observes its parent's cancellation."""
        parent = Context.background()
        child = parent.with_timeout(10)
        parent.cancel()
        assert child.done()
        assert child.err().code == ErrorCode.CANCELED

    def test_child_keeps_earlier_parent_deadline(self) -> None:
        """Test a child never outlives its parent's deadline."""
        parent = Context.background().with_timeout(1)
        child = parent.with_timeout(60)
        assert child.deadline == parent.deadline

    def test_sleep_full_duration(self) -> None:
        """Test sleep returns True when not interrupted."""
        assert Context.background().sleep(0.01) is True

    def test_sleep_interrupted_by_cancel(self) -> None:
        """Test sleep wakes early when the context is canceled."""
        ctx = Context.background()
        timer = threading.Timer(0.05, ctx.cancel)
        timer.start()
        started = time.monotonic()
        assert ctx.sleep(5) is False
        assert time.monotonic() - started < 2
        timer.join()

    def test_ensure_context(self) -> None:
        """Test ensure_context returns the given context or a fresh one."""
        ctx = Context.background()
        assert ensure_context(ctx) is ctx
        assert isinstance(ensure_context(None), Context)
