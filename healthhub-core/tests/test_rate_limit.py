"""
Rate Limiter Tests
==================
Fixed window counters per identity and per network origin.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, NoScriptError

from healthhub_core.errors import RateLimited, StoreUnavailable
from healthhub_core.rate_limit import (
    InMemoryAttemptLimiter,
    LoginRateLimiter,
    RateLimitResult,
    RedisAttemptLimiter,
)


class TestInMemoryAttemptLimiter:
    """Tests for the in-memory window counter."""

    @pytest.mark.asyncio
    async def test_rejects_attempt_after_threshold(self, clock):
        """The 6th attempt in a window of 5 should be rejected."""
        limiter = InMemoryAttemptLimiter(rate=5, window=900, clock=clock)

        results = [await limiter.hit("k") for _ in range(6)]

        assert all(r.allowed for r in results[:5])
        assert results[4].remaining == 0
        assert results[5].result == RateLimitResult.BLOCKED
        assert results[5].retry_after == 900

    @pytest.mark.asyncio
    async def test_counter_resets_after_window(self, clock):
        """Counter should reset once the window elapses."""
        limiter = InMemoryAttemptLimiter(rate=5, window=900, clock=clock)
        for _ in range(5):
            await limiter.hit("k")

        clock.advance(seconds=899)
        assert (await limiter.hit("k")).allowed is False

        clock.advance(seconds=1)
        info = await limiter.hit("k")
        assert info.allowed is True
        assert info.remaining == 4

    @pytest.mark.asyncio
    async def test_denied_attempts_are_not_counted(self, clock):
        """Rejected attempts should not extend or consume the next window."""
        limiter = InMemoryAttemptLimiter(rate=2, window=60, clock=clock)
        for _ in range(10):
            await limiter.hit("k")

        clock.advance(seconds=60)
        assert (await limiter.hit("k")).allowed is True
        assert (await limiter.hit("k")).allowed is True
        assert (await limiter.hit("k")).allowed is False

    @pytest.mark.asyncio
    async def test_concurrent_hits_allow_exactly_rate(self, clock):
        """Simultaneous attempts on one key should never exceed the threshold."""
        limiter = InMemoryAttemptLimiter(rate=5, window=900, clock=clock)

        results = await asyncio.gather(*(limiter.hit("k") for _ in range(20)))

        assert sum(r.allowed for r in results) == 5
        assert sorted(r.attempts for r in results if r.allowed) == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_expired_windows_are_discarded(self, clock):
        limiter = InMemoryAttemptLimiter(rate=5, window=900, clock=clock)
        await limiter.hit("a")
        await limiter.hit("b")

        clock.advance(seconds=900)
        await limiter.hit("c")

        assert set(limiter._counters) == {"c"}

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        limiter = InMemoryAttemptLimiter(rate=1, window=60, clock=clock)

        assert (await limiter.hit("a")).allowed is True
        assert (await limiter.hit("b")).allowed is True
        assert (await limiter.hit("a")).allowed is False


class TestLoginRateLimiter:
    """Tests for the two login keyspaces."""

    def _limiter(self, clock):
        return LoginRateLimiter(
            InMemoryAttemptLimiter(rate=5, window=900, clock=clock),
            InMemoryAttemptLimiter(rate=15, window=900, clock=clock),
        )

    @pytest.mark.asyncio
    async def test_identity_keyspace(self, clock):
        """Sixth attempt for one identity should raise RateLimited."""
        limiter = self._limiter(clock)
        for i in range(5):
            await limiter.check("a@x.com", f"10.0.0.{i}")

        with pytest.raises(RateLimited) as exc_info:
            await limiter.check("A@X.com ", "10.0.0.99")

        assert exc_info.value.key_type == "identity"
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_origin_keyspace_bounds_many_identities(self, clock):
        """One origin spraying distinct identities should be limited at 15."""
        limiter = self._limiter(clock)
        for i in range(15):
            await limiter.check(f"user{i}@x.com", "203.0.113.7")

        with pytest.raises(RateLimited) as exc_info:
            await limiter.check("fresh@x.com", "203.0.113.7")

        assert exc_info.value.key_type == "origin"

    @pytest.mark.asyncio
    async def test_concurrent_spray_from_one_origin(self, clock):
        limiter = self._limiter(clock)

        outcomes = await asyncio.gather(
            *(limiter.check(f"user{i}@x.com", "203.0.113.7") for i in range(30)),
            return_exceptions=True,
        )

        assert outcomes.count(None) == 15
        assert all(isinstance(o, RateLimited) for o in outcomes if o is not None)

    def test_key_format(self, clock):
        from healthhub_core.rate_limit import KeyType

        limiter = self._limiter(clock)
        assert limiter.get_key(KeyType.IDENTITY, "a@x.com") == "ratelimit:login:identity:a@x.com"


class TestRedisAttemptLimiter:
    """Tests for the Redis-backed counter with a mocked client."""

    @pytest.mark.asyncio
    async def test_maps_script_result(self, clock):
        redis = AsyncMock()
        redis.script_load.return_value = "sha"
        redis.evalsha.return_value = [0, 5, 1768385700, 300]
        limiter = RedisAttemptLimiter(redis, rate=5, window=900, clock=clock)

        info = await limiter.hit("ratelimit:login:identity:a@x.com")

        assert info.allowed is False
        assert info.retry_after == 300
        redis.evalsha.assert_awaited_once_with(
            "sha", 1, "ratelimit:login:identity:a@x.com", 5, 900, int(clock().timestamp())
        )

    @pytest.mark.asyncio
    async def test_fails_closed_when_redis_unreachable(self, clock):
        """A Redis error should surface as StoreUnavailable, never as allowed."""
        redis = AsyncMock()
        redis.script_load.side_effect = RedisConnectionError("connection refused")
        limiter = RedisAttemptLimiter(redis, clock=clock)

        with pytest.raises(StoreUnavailable) as exc_info:
            await limiter.hit("k")

        assert exc_info.value.dependency == "rate_limit_store"

    @pytest.mark.asyncio
    async def test_reloads_script_after_redis_forgets_it(self, clock):
        """After a restart or SCRIPT FLUSH the script is loaded again and the attempt counted."""
        redis = AsyncMock()
        redis.script_load.side_effect = ["sha-1", "sha-2"]
        redis.evalsha.side_effect = [
            [1, 1, 1768385700, 0],
            NoScriptError("No matching script. Please use EVAL."),
            [1, 2, 1768385700, 0],
        ]
        limiter = RedisAttemptLimiter(redis, rate=5, window=900, clock=clock)

        first = await limiter.hit("k")
        second = await limiter.hit("k")

        assert first.allowed and second.allowed
        assert second.attempts == 2
        assert redis.script_load.await_count == 2
        assert redis.evalsha.await_args.args[0] == "sha-2"

    @pytest.mark.asyncio
    async def test_reload_happens_once_per_call(self, clock):
        redis = AsyncMock()
        redis.script_load.return_value = "sha"
        redis.evalsha.side_effect = NoScriptError("No matching script. Please use EVAL.")
        limiter = RedisAttemptLimiter(redis, clock=clock)

        with pytest.raises(StoreUnavailable):
            await limiter.hit("k")

        assert redis.evalsha.await_count == 2
