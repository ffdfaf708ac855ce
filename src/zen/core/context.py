"""
Cancellation and deadline context.

Blocking operations in zen take an optional Context. A context can be
canceled explicitly or carry a deadline; child contexts created with
with_timeout() observe the parent's cancellation as well as their own
(earlier) deadline.

Example:
    >>> ctx = Context.background().with_timeout(5.0)
    >>> ctx.sleep(0.1)        # returns early if canceled
    True
    >>> ctx.check()           # raises ZenError(canceled|timeout) once done
"""

from __future__ import annotations

import threading
import time

from zen.core.errors import ErrorCode, ZenError


class Context:
    """Cooperative cancellation token with an optional monotonic deadline."""

    def __init__(
        self,
        deadline: float | None = None,
        parent: Context | None = None,
    ) -> None:
        self._event = threading.Event()
        self._canceled = False
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> Context:
        """Return a context that is never done unless canceled."""
        return cls()

    def with_timeout(self, seconds: float | None) -> Context:
        """Derive a child context expiring after seconds (None or <= 0: no extra limit)."""
        if seconds is None or seconds <= 0:
            return Context(parent=self)
        return Context(deadline=time.monotonic() + seconds, parent=self)

    def cancel(self) -> None:
        self._canceled = True
        self._event.set()

    def canceled(self) -> bool:
        if self._canceled:
            return True
        return self._parent.canceled() if self._parent is not None else False

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def done(self) -> bool:
        return self.canceled() or self.expired()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def err(self) -> ZenError | None:
        """Return the ZenError describing why the context is done, if it is."""
        if self.canceled():
            return ZenError(ErrorCode.CANCELED, "operation canceled", retryable=False)
        if self.expired():
            return ZenError(ErrorCode.TIMEOUT, "deadline exceeded")
        return None

    def check(self) -> None:
        """Raise the context error if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    def sleep(self, seconds: float) -> bool:
        """
        Sleep up to seconds, waking early on cancellation or deadline.

        Returns:
            True if the full duration elapsed, False if the context finished first
        """
        end = time.monotonic() + max(0.0, seconds)
        while True:
            if self.done():
                return False
            now = time.monotonic()
            if now >= end:
                return True
            wait = end - now
            remaining = self.remaining()
            if remaining is not None:
                wait = min(wait, remaining)
            # Wake periodically so parent cancellation is observed.
            self._event.wait(min(wait, 0.05))


def ensure_context(ctx: Context | None) -> Context:
    return ctx if ctx is not None else Context.background()


__all__ = ["Context", "ensure_context"]
