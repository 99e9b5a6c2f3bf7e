"""Rate limiting for GitHub API calls."""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_second: float = 10.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
        """
        if requests_per_second <= 0:
            raise ValueError('requests_per_second must be positive')

        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    def _take(self) -> float:
        """Consume a token and return how long the caller must sleep first."""
        self._refill()

        if self.tokens >= 1:
            self.tokens -= 1
            return 0.0

        sleep_time = (1 - self.tokens) / self.requests_per_second
        self.tokens = 0
        self.last_update += sleep_time
        return sleep_time

    async def acquire(self) -> None:
        """Acquire a token for making a request (async version).

        Blocks until a token is available.
        """
        async with self._lock:
            sleep_time = self._take()
            if sleep_time:
                await asyncio.sleep(sleep_time)

    def acquire_sync(self) -> None:
        """Acquire a token for making a request (synchronous version).

        Blocks until a token is available.
        """
        sleep_time = self._take()
        if sleep_time:
            time.sleep(sleep_time)

    def time_until_next_request(self) -> float:
        """Get time until next request can be made.

        Returns:
            Seconds until next request is allowed
        """
        self._refill()
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.requests_per_second
