"""Throttling of Azure Resource Manager calls made by parallel workers."""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Generator

from metrics import RATE_LIMIT_WAIT_SECONDS

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket plus a cap on calls in flight.

    ARM throttles per subscription, so every cloud call of a pass goes
    through one shared limiter regardless of which node worker makes it.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        requests_per_second: float = 20.0,
        burst: int | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum number of calls in flight
            requests_per_second: Refill rate of the bucket (0 disables it)
            burst: Bucket capacity; defaults to max_concurrent
        """
        self._slots = threading.Semaphore(max_concurrent)
        self._rate = requests_per_second
        self._capacity = float(burst if burst is not None else max_concurrent)
        self._tokens = self._capacity
        self._refilled_at = time.monotonic()
        self._lock = threading.Lock()
        self._max_concurrent = max_concurrent

        logger.info(
            "ARM rate limiter: max_concurrent=%d, requests_per_second=%.1f, burst=%d",
            max_concurrent,
            requests_per_second,
            int(self._capacity),
        )

    def _take_token(self) -> float:
        """Take one token, returning how long the caller must sleep for it."""
        with self._lock:
            now = time.monotonic()
            self._tokens = min(
                self._capacity, self._tokens + (now - self._refilled_at) * self._rate
            )
            self._refilled_at = now
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            # Negative balance is paid back by sleeping
            return -self._tokens / self._rate

    @contextmanager
    def acquire(self) -> Generator[None, None, None]:
        """Hold a call slot for the duration of the block.

        Usage:
            with rate_limiter.acquire():
                compute.virtual_machines.get(...)
        """
        wait_start = time.monotonic()
        self._slots.acquire()
        try:
            if self._rate > 0:
                delay = self._take_token()
                if delay > 0:
                    time.sleep(delay)

            waited = time.monotonic() - wait_start
            if waited > 0.001:
                RATE_LIMIT_WAIT_SECONDS.observe(waited)
            yield
        finally:
            self._slots.release()

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_concurrent={self._max_concurrent}, "
            f"requests_per_second={self._rate}, burst={int(self._capacity)})"
        )
