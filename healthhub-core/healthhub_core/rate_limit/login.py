"""
Login Rate Limiter
==================
Bounds login attempts per identity and, independently, per network origin
so one address flooding many accounts is throttled regardless of lockout.
"""

from typing import Protocol

import structlog

from ..errors import RateLimited
from ..store.models import normalize_identity
from .models import KeyType, RateLimitInfo

logger = structlog.get_logger(__name__)


class AttemptLimiter(Protocol):
    rate: int
    window: int

    async def hit(self, key: str) -> RateLimitInfo:
        ...

    async def reset(self, key: str) -> None:
        ...


class LoginRateLimiter:
    """Checks both login keyspaces and counts the attempt in each."""

    def __init__(
        self,
        identity_limiter: AttemptLimiter,
        origin_limiter: AttemptLimiter,
        prefix: str = "ratelimit:login",
    ):
        self.identity_limiter = identity_limiter
        self.origin_limiter = origin_limiter
        self.prefix = prefix

    def get_key(self, key_type: KeyType, identifier: str) -> str:
        """Generate a rate limit key."""
        return f"{self.prefix}:{key_type.value}:{identifier}"

    async def check(self, identity: str, origin: str) -> None:
        """
        Count a login attempt for ``identity`` from ``origin``.

        Each keyspace is checked and incremented atomically on its own key.

        Raises:
            RateLimited: if either keyspace is at its threshold
            StoreUnavailable: if the counter store is unreachable
        """
        identity_info = await self.identity_limiter.hit(
            self.get_key(KeyType.IDENTITY, normalize_identity(identity))
        )
        if not identity_info.allowed:
            logger.warning(
                "login_rate_limited",
                key_type=KeyType.IDENTITY.value,
                retry_after=identity_info.retry_after,
            )
            raise RateLimited(KeyType.IDENTITY.value, identity_info.retry_after)

        origin_info = await self.origin_limiter.hit(
            self.get_key(KeyType.ORIGIN, origin)
        )
        if not origin_info.allowed:
            logger.warning(
                "login_rate_limited",
                key_type=KeyType.ORIGIN.value,
                retry_after=origin_info.retry_after,
            )
            raise RateLimited(KeyType.ORIGIN.value, origin_info.retry_after)
