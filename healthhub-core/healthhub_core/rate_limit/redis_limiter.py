"""
Redis Attempt Limiter
=====================
Redis-backed fixed window attempt counter using a Lua script so the read
and the increment are one atomic operation per key.
"""

from typing import Optional
import structlog

from ..clock import Clock, utcnow
from ..redis_scripts import CachedScript
from ..timeouts import call_with_timeout
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)

# Lua script for an atomic check-and-increment on a window anchored at the
# first attempt seen for the key
ATTEMPT_WINDOW_SCRIPT = """
local key = KEYS[1]
local rate = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local data = redis.call('HMGET', key, 'count', 'window_start')
local count = tonumber(data[1]) or 0
local window_start = tonumber(data[2]) or now

if now - window_start >= window then
    count = 0
    window_start = now
end

local window_ends_at = window_start + window

if count >= rate then
    return {0, count, window_ends_at, window_ends_at - now}
end

count = count + 1
redis.call('HSET', key, 'count', count, 'window_start', window_start)
redis.call('EXPIRE', key, math.max(1, window_ends_at - now))

return {1, count, window_ends_at, 0}
"""


class RedisAttemptLimiter:
    """
    Redis-backed attempt counter.

    Fails closed: any Redis error or timeout raises StoreUnavailable rather
    than letting the attempt through.
    """

    def __init__(
        self,
        redis_client,
        rate: int = 5,
        window: int = 900,
        timeout: float = 2.0,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            redis_client: Async Redis client
            rate: Attempts per window
            window: Window size in seconds
            timeout: Per-call timeout in seconds
            clock: Time source (defaults to UTC now)
        """
        self.redis = redis_client
        self.rate = rate
        self.window = window
        self.timeout = timeout
        self.clock = clock or utcnow
        self._script = CachedScript(redis_client, ATTEMPT_WINDOW_SCRIPT, timeout, "rate_limit_store")

    async def hit(self, key: str) -> RateLimitInfo:
        """
        Check and count an attempt for ``key``.

        Raises:
            StoreUnavailable: if Redis cannot be reached in time
        """
        now = int(self.clock().timestamp())
        result = await self._script([key], [self.rate, self.window, now])

        allowed, attempts, window_ends_at, retry_after = result

        return RateLimitInfo(
            allowed=bool(allowed),
            attempts=int(attempts),
            limit=self.rate,
            window_ends_at=int(window_ends_at),
            retry_after=int(retry_after) if retry_after else None,
        )

    async def reset(self, key: str) -> None:
        await call_with_timeout(self.redis.delete(key), self.timeout, "rate_limit_store")
