"""
In-Memory Attempt Limiter
=========================
Fixed window attempt counter for development and testing.
"""

import asyncio
import math
from typing import Dict, Optional, Tuple

from ..clock import Clock, utcnow
from .models import RateLimitInfo


class InMemoryAttemptLimiter:
    """
    In-memory attempt counter with a window anchored at first-seen time.

    For development and testing only.
    Use RedisAttemptLimiter in production.
    """

    def __init__(self, rate: int = 5, window: int = 900, clock: Optional[Clock] = None):
        """
        Args:
            rate: Attempts allowed per window
            window: Window size in seconds
            clock: Time source (defaults to UTC now)
        """
        self.rate = rate
        self.window = window
        self.clock = clock or utcnow
        self._counters: Dict[str, Tuple[float, int]] = {}
        self._lock = asyncio.Lock()
        self._last_prune = 0.0

    def _prune(self, now: float) -> None:
        # at most once per window; caller holds the lock
        if now - self._last_prune < self.window:
            return
        self._last_prune = now
        stale = [k for k, (start, _) in self._counters.items() if now - start >= self.window]
        for key in stale:
            del self._counters[key]

    async def hit(self, key: str) -> RateLimitInfo:
        """
        Check the counter for ``key`` and count this attempt if allowed.

        The check and the increment happen under one lock, so concurrent
        callers can never both observe "one below the threshold".
        """
        async with self._lock:
            now = self.clock().timestamp()
            self._prune(now)
            window_start, attempts = self._counters.get(key, (now, 0))

            if now - window_start >= self.window:
                window_start, attempts = now, 0

            window_ends_at = window_start + self.window

            if attempts >= self.rate:
                return RateLimitInfo(
                    allowed=False,
                    attempts=attempts,
                    limit=self.rate,
                    window_ends_at=int(window_ends_at),
                    retry_after=max(1, math.ceil(window_ends_at - now)),
                )

            attempts += 1
            self._counters[key] = (window_start, attempts)
            return RateLimitInfo(
                allowed=True,
                attempts=attempts,
                limit=self.rate,
                window_ends_at=int(window_ends_at),
            )

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._counters.pop(key, None)
