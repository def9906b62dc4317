"""
MFA Challenge Store
===================
Short-lived storage of pending challenges, keyed by challenge id.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..clock import Clock, utcnow
from ..timeouts import call_with_timeout
from .models import MFAChallenge


class ChallengeStore(ABC):

    @abstractmethod
    async def put(self, challenge: MFAChallenge) -> None:
        ...

    @abstractmethod
    async def get(self, challenge_id: str) -> Optional[MFAChallenge]:
        ...

    @abstractmethod
    async def consume_attempt(self, challenge_id: str) -> int:
        """Atomically take one attempt. Returns attempts left before this one
        was taken (0 or less means none were available)."""

    @abstractmethod
    async def delete(self, challenge_id: str) -> None:
        ...


class InMemoryChallengeStore(ChallengeStore):
    """In-memory challenge store for development and testing."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utcnow
        self._challenges: Dict[str, MFAChallenge] = {}

    async def put(self, challenge: MFAChallenge) -> None:
        self._challenges[challenge.id] = challenge

    async def get(self, challenge_id: str) -> Optional[MFAChallenge]:
        return self._challenges.get(challenge_id)

    async def consume_attempt(self, challenge_id: str) -> int:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            return 0
        available = challenge.attempts_remaining
        challenge.attempts_remaining -= 1
        return available

    async def delete(self, challenge_id: str) -> None:
        self._challenges.pop(challenge_id, None)


class RedisChallengeStore(ChallengeStore):
    """
    Redis-backed challenge store.

    Challenge fields live in a hash at ``mfa:challenge:{id}`` expiring with
    the challenge; attempts are taken with HINCRBY.
    """

    def __init__(
        self,
        redis_client,
        timeout: float = 2.0,
        prefix: str = "mfa:challenge",
        clock: Optional[Clock] = None,
    ):
        self.redis = redis_client
        self.timeout = timeout
        self.prefix = prefix
        self.clock = clock or utcnow

    def _key(self, challenge_id: str) -> str:
        return f"{self.prefix}:{challenge_id}"

    async def put(self, challenge: MFAChallenge) -> None:
        ttl = max(1, int((challenge.expires_at - self.clock()).total_seconds()))
        key = self._key(challenge.id)
        data = challenge.to_dict()
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(key, mapping={
            "record": json.dumps(data),
            "attempts_remaining": data["attempts_remaining"],
        })
        pipe.expire(key, ttl)
        await call_with_timeout(pipe.execute(), self.timeout, "mfa_store")

    async def get(self, challenge_id: str) -> Optional[MFAChallenge]:
        raw = await call_with_timeout(
            self.redis.hmget(self._key(challenge_id), "record", "attempts_remaining"),
            self.timeout,
            "mfa_store",
        )
        record, attempts = raw
        if record is None:
            return None
        if isinstance(record, bytes):
            record = record.decode("utf-8")
        data = json.loads(record)
        data["attempts_remaining"] = int(attempts)
        return MFAChallenge.from_dict(data)

    async def consume_attempt(self, challenge_id: str) -> int:
        remaining = await call_with_timeout(
            self.redis.hincrby(self._key(challenge_id), "attempts_remaining", -1),
            self.timeout,
            "mfa_store",
        )
        return int(remaining) + 1

    async def delete(self, challenge_id: str) -> None:
        await call_with_timeout(
            self.redis.delete(self._key(challenge_id)), self.timeout, "mfa_store"
        )
