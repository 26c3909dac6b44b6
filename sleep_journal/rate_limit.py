"""Fixed-window attempt limiter.

One `RateLimiter` is created per process (in the app lifespan) and handed
to the routes that need it through `app.state`; nothing here is global.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # clock seconds when the window ends

    def retry_after(self, now: float) -> int:
        return max(0, int(self.reset_at - now) + 1)


class RateLimitExceeded(Exception):
    """Raised when a key has used up its attempts for the current window."""

    def __init__(self, key: str, result: RateLimitResult):
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.result = result


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Count attempts per key within a fixed time window.

    The first attempt for a key opens a window of `window_seconds`; once
    `max_attempts` is exceeded further attempts are refused until the window
    ends. Safe to share between threadpool workers.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def hit(self, key: str) -> RateLimitResult:
        """Record one attempt for `key` and report whether it is allowed."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window
            window.count += 1
            attempts = window.count
            result = RateLimitResult(
                allowed=window.count <= self.max_attempts,
                remaining=max(0, self.max_attempts - window.count),
                reset_at=window.reset_at,
            )

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {key} ({attempts}/{self.max_attempts} attempts)")
        return result

    def check(self, key: str) -> RateLimitResult:
        """Like `hit`, but raise RateLimitExceeded instead of returning a refusal."""
        result = self.hit(key)
        if not result.allowed:
            raise RateLimitExceeded(key, result)
        return result

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if window.reset_at <= now]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
