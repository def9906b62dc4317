"""
Session Store
=============
Registry of live sessions. A bearer token is only honoured while its
session id resolves here.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, Optional

import structlog

from ..clock import Clock, utcnow
from ..timeouts import call_with_timeout
from .models import SessionRecord

logger = structlog.get_logger(__name__)


class SessionStore(ABC):

    @abstractmethod
    async def put(self, record: SessionRecord) -> None:
        ...

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        """Live record for ``session_id``, or None if unknown or expired."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""

    @abstractmethod
    async def delete_for_identity(self, identity: str) -> int:
        """Remove every session of ``identity``. Returns the count removed."""


class InMemorySessionStore(SessionStore):
    """
    In-memory session registry.

    For development and testing only.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utcnow
        self._sessions: Dict[str, SessionRecord] = {}

    async def put(self, record: SessionRecord) -> None:
        self._sessions[record.session_id] = record

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if record.is_expired(self.clock()):
            del self._sessions[session_id]
            return None
        return record

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def delete_for_identity(self, identity: str) -> int:
        doomed = [sid for sid, r in self._sessions.items() if r.identity == identity]
        for sid in doomed:
            del self._sessions[sid]
        return len(doomed)


class RedisSessionStore(SessionStore):
    """
    Redis-backed session registry.

    Records are JSON strings at ``session:{id}`` expiring with the session;
    ``session:identity:{identity}`` is a set of that identity's session ids
    used for revoke-all.
    """

    def __init__(
        self,
        redis_client,
        timeout: float = 2.0,
        prefix: str = "session",
        clock: Optional[Clock] = None,
    ):
        self.redis = redis_client
        self.timeout = timeout
        self.prefix = prefix
        self.clock = clock or utcnow

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    def _identity_key(self, identity: str) -> str:
        return f"{self.prefix}:identity:{identity}"

    async def put(self, record: SessionRecord) -> None:
        ttl = max(1, int((record.expires_at - self.clock()).total_seconds()))
        index_key = self._identity_key(record.identity)
        # record and identity index land together or not at all
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(self._key(record.session_id), json.dumps(record.to_dict()), ex=ttl)
        pipe.sadd(index_key, record.session_id)
        pipe.expire(index_key, ttl)
        await call_with_timeout(pipe.execute(), self.timeout, "session_store")

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        raw = await call_with_timeout(
            self.redis.get(self._key(session_id)), self.timeout, "session_store"
        )
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        record = SessionRecord.from_dict(json.loads(raw))
        if record.is_expired(self.clock()):
            return None
        return record

    async def delete(self, session_id: str) -> bool:
        removed = await call_with_timeout(
            self.redis.delete(self._key(session_id)), self.timeout, "session_store"
        )
        return bool(removed)

    async def delete_for_identity(self, identity: str) -> int:
        index_key = self._identity_key(identity)
        members = await call_with_timeout(
            self.redis.smembers(index_key), self.timeout, "session_store"
        )
        removed = 0
        for sid in members:
            if isinstance(sid, bytes):
                sid = sid.decode("utf-8")
            if await self.delete(sid):
                removed += 1
        await call_with_timeout(self.redis.delete(index_key), self.timeout, "session_store")
        return removed
