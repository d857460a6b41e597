"""Per-user rate limiting for YouTube API calls."""

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Optional

from .config import config


class RateLimiter:
    """Rolling window rate limiter, one window per key (user id)."""

    def __init__(self, max_requests: int = None, window_seconds: int = None):
        self.max_requests = max_requests or config.RATE_LIMIT_REQUESTS
        self.window_seconds = window_seconds or config.RATE_LIMIT_WINDOW
        self._requests: dict[str, deque] = defaultdict(deque)
        self._lock = Lock()

    def _cleanup(self, key: str, now: float) -> deque:
        """Drop requests outside the current window and return the key's deque."""
        window = self._requests[key]
        while window and window[0] <= now - self.window_seconds:
            window.popleft()
        return window

    def acquire(self, key: str) -> float:
        """
        Record a request for `key` if the window allows it.

        Returns:
            0.0 when the request was recorded, otherwise seconds until a slot frees up
        """
        with self._lock:
            now = time.time()
            window = self._cleanup(key, now)
            if len(window) < self.max_requests:
                window.append(now)
                return 0.0
            return max(0.0, (window[0] + self.window_seconds) - now)

    def wait_and_acquire(self, key: str, max_wait: float = 60.0) -> None:
        """Block until a slot is free, or raise RateLimitError if that takes longer than max_wait."""
        wait_time = self.acquire(key)
        if wait_time == 0.0:
            return
        if wait_time > max_wait:
            raise RateLimitError(f"Rate limit exceeded. Retry after {wait_time:.0f}s", wait_time)
        time.sleep(wait_time + 0.1)
        if self.acquire(key) != 0.0:
            raise RateLimitError("Rate limit exceeded after waiting", self.get_reset_time(key))

    def get_remaining_requests(self, key: str) -> int:
        """Get the number of requests remaining in the key's current window."""
        with self._lock:
            window = self._cleanup(key, time.time())
            return max(0, self.max_requests - len(window))

    def get_reset_time(self, key: str) -> float:
        """Get seconds until the key's oldest request leaves the window."""
        with self._lock:
            now = time.time()
            window = self._cleanup(key, now)
            if not window:
                return 0.0
            return max(0.0, (window[0] + self.window_seconds) - now)


class RateLimitError(Exception):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


# Global rate limiter instance
rate_limiter = RateLimiter()
