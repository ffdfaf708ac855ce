"""
Retry with exponential backoff and jitter for sync operations.

Only ZenErrors whose ``retryable`` flag is set are retried; anything else
propagates on the first failure. Backoff sleeps go through the cancellation
context, so a canceled or expired context stops the loop immediately.

Example:
    >>> policy = RetryPolicy(max_retries=3)
    >>> value = retry_with_backoff(lambda: provider.get_task("PROJ-1"), policy, ctx=ctx)
"""

import logging
import random
from collections.abc import Callable
from typing import TypeVar

from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, ZenError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_COUNT = 3
DEFAULT_BASE_DELAY = 0.1
DEFAULT_MAX_DELAY = 5.0


class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt (default: 3)
        base_delay: Delay in seconds before the first retry (default: 0.1)
        multiplier: Exponential backoff multiplier (default: 2.0)
        max_delay: Upper bound on any single delay (default: 5.0)
        jitter: Whether to add jitter to delays (default: True)
        jitter_ratio: Random variance ratio for jitter (default: 0.2 = ±20%)
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_RETRY_COUNT,
        base_delay: float = DEFAULT_BASE_DELAY,
        multiplier: float = 2.0,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: bool = True,
        jitter_ratio: float = 0.2,
    ) -> None:
        """
        Initialize retry policy.

        Raises:
            ValueError: If parameters are invalid
        """
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (0-indexed).

        ``base_delay * multiplier**attempt``, capped at ``max_delay``, with
        ±jitter_ratio variance applied after the cap.
        """
        delay = min(self.max_delay, self.base_delay * (self.multiplier**attempt))
        if self.jitter:
            variance = delay * self.jitter_ratio
            delay += random.uniform(-variance, variance)
        return max(0.0, min(delay, self.max_delay))


def retry_with_backoff(
    func: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    ctx: Context | None = None,
    on_retry: Callable[[int, ZenError], None] | None = None,
) -> T:
    """
    Call func until it succeeds, fails permanently, or retries run out.

    Args:
        func: Zero-argument callable performing one attempt
        policy: Retry policy (defaults to 3 retries, 100ms base, 5s cap)
        ctx: Cancellation context checked before every attempt and used for
            backoff sleeps
        on_retry: Called with (attempt, error) before each backoff

    Returns:
        The first successful return value of func

    Raises:
        ZenError: The last error, or ctx.err() once the context is done
    """
    policy = policy or RetryPolicy()
    ctx = ensure_context(ctx)
    func_name = getattr(func, "__name__", repr(func))

    attempt = 0
    while True:
        ctx.check()
        try:
            return func()
        except ZenError as e:
            if not is_retryable(e):
                logger.debug("%s: non-retryable error on attempt %d: %s", func_name, attempt + 1, e)
                raise
            if attempt >= policy.max_retries:
                logger.warning("%s: max retries (%d) exceeded: %s", func_name, policy.max_retries, e)
                raise

            delay = policy.calculate_delay(attempt)
            logger.info(
                "%s: retry %d/%d after %.2fs due to: %s",
                func_name, attempt + 1, policy.max_retries, delay, e,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            if not ctx.sleep(delay):
                err = ctx.err() or ZenError(
                    ErrorCode.CANCELED, "operation canceled", retryable=False
                )
                raise err from e
            attempt += 1


__all__ = [
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_DELAY",
    "DEFAULT_RETRY_COUNT",
    "RetryPolicy",
    "retry_with_backoff",
]
