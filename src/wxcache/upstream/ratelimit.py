"""Token bucket rate limiter for upstream API calls.

DataPoint licences cap the number of calls per minute, so every upstream
call made by the process goes through a single shared RateLimiter.
"""

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional, Union

from wxcache.upstream.errors import RateLimitTimeout

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket with a fixed-interval refill strategy.

    Every time a full ``period`` elapses, ``refill_tokens`` tokens are added
    to the bucket, capped at ``capacity``. ``acquire()`` consumes one token,
    sleeping until the next refill when the bucket is empty. Thread-safe:
    the bucket state is guarded by a lock and sleeping happens outside it.

    Example:
        >>> limiter = RateLimiter(capacity=50, period=60)
        >>> limiter.acquire()  # returns immediately while tokens remain
    """

    def __init__(
        self,
        capacity: int,
        refill_tokens: Optional[int] = None,
        period: Union[float, timedelta] = 60.0,
        initial_tokens: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the bucket.

        Args:
            capacity: Maximum number of tokens held
            refill_tokens: Tokens added per period (defaults to capacity)
            period: Refill period in seconds, or a timedelta
            initial_tokens: Tokens available immediately (defaults to capacity)
            clock: Monotonic time source in seconds
            sleep: Function used to wait for the next refill
        """
        if isinstance(period, timedelta):
            period = period.total_seconds()
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")

        self.capacity = capacity
        self.refill_tokens = capacity if refill_tokens is None else refill_tokens
        if self.refill_tokens <= 0:
            raise ValueError(f"refill_tokens must be positive, got {self.refill_tokens}")
        self.period = float(period)

        initial = capacity if initial_tokens is None else initial_tokens
        self._tokens = max(0, min(initial, capacity))
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed < self.period:
            return
        periods = int(elapsed // self.period)
        self._tokens = min(self.capacity, self._tokens + periods * self.refill_tokens)
        self._last_refill += periods * self.period

    @property
    def available_tokens(self) -> int:
        """Tokens that could be consumed right now."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def try_acquire(self) -> bool:
        """Consume a token if one is available, without waiting."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False

    def acquire(self, timeout: Optional[float] = None) -> None:
        """Block until a token is available, then consume it.

        Args:
            timeout: Optional maximum wait in seconds

        Raises:
            RateLimitTimeout: Only if ``timeout`` is given and no token
                becomes available before it expires
        """
        deadline = None if timeout is None else self._clock() + timeout

        while True:
            with self._lock:
                now = self._clock()
                self._refill(now)
                if self._tokens > 0:
                    self._tokens -= 1
                    return
                wait = self._last_refill + self.period - now

            if deadline is not None and now + wait > deadline:
                raise RateLimitTimeout(timeout)

            logger.debug(f"Rate limit reached, waiting {wait:.2f}s for refill")
            self._sleep(max(wait, 0.0))
