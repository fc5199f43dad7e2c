"""Retry policy for provider calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from pydantic import Field

from screener.exceptions import ThrottledError
from screener.types import FrozenModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_throttled(exc: BaseException) -> bool:
    """Default retry predicate: only rate-limit failures are retried."""
    return isinstance(exc, ThrottledError)


class RetryPolicy(FrozenModel):
    """Bounded retry with exponential backoff.

    The first attempt runs immediately; attempt ``n >= 2`` waits
    ``base_delay * multiplier ** (n - 2)`` seconds first. With the defaults the
    waits are 0, 0.6 and 1.2 seconds.

    :param max_attempts: Total attempts including the first.
    :param base_delay: Wait before the second attempt, in seconds.
    :param multiplier: Growth factor between consecutive waits.
    :param retryable: Predicate deciding whether an exception is retried.
    """

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.6, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    retryable: Callable[[BaseException], bool] = is_throttled

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based)."""
        if attempt <= 1:
            return 0.0
        return self.base_delay * self.multiplier ** (attempt - 2)

    def call(
        self,
        fn: Callable[..., T],
        *args: object,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs: object,
    ) -> T:
        """Invoke ``fn`` until it succeeds, fails non-retryably or runs out of attempts.

        :param fn: Callable to invoke.
        :param sleep: Function used to wait between attempts.
        :returns: The first successful result.
        :raises Exception: The last error raised by ``fn``.
        """
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e) or attempt >= self.max_attempts:
                    raise
                attempt += 1
                delay = self.delay_before(attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt - 1,
                    self.max_attempts,
                    e,
                    delay,
                )
                sleep(delay)
