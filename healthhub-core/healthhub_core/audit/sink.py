"""
Audit Sinks
===========
Append-only storage for audit events, queryable by identity and time range.
"""

import json
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from ..clock import Clock, utcnow
from ..timeouts import call_with_timeout
from .models import AuditEvent

logger = structlog.get_logger(__name__)

ANONYMOUS = "anonymous"


class AuditSink(ABC):
    """Durable, append-only audit event store."""

    @abstractmethod
    async def append(self, event: AuditEvent) -> None:
        ...

    @abstractmethod
    async def events_for(
        self,
        identity: str,
        since: datetime,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEvent]:
        """Events for ``identity`` with since <= timestamp <= until, oldest first.

        With ``limit``, only the most recent ``limit`` events are returned.
        """


class InMemoryAuditSink(AuditSink):
    """List-backed sink for development and testing."""

    def __init__(self):
        self._events: Dict[str, List[AuditEvent]] = defaultdict(list)

    @property
    def events(self) -> List[AuditEvent]:
        """All events, oldest first."""
        return sorted(
            (e for events in self._events.values() for e in events),
            key=lambda e: e.timestamp,
        )

    async def append(self, event: AuditEvent) -> None:
        self._events[event.identity or ANONYMOUS].append(event)

    async def events_for(
        self,
        identity: str,
        since: datetime,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEvent]:
        matched = sorted(
            (
                e for e in self._events.get(identity, [])
                if e.timestamp >= since and (until is None or e.timestamp <= until)
            ),
            key=lambda e: e.timestamp,
        )
        return matched[-limit:] if limit else matched


class RedisAuditSink(AuditSink):
    """
    Redis-backed sink.

    Each identity has one sorted set scored by event time whose members are
    the serialized events, so an append touches a single key. Entries older
    than the retention period are trimmed on append and the key expires
    with the retention period of its newest event.
    """

    def __init__(
        self,
        redis_client,
        timeout: float = 2.0,
        prefix: str = "audit:identity",
        clock: Optional[Clock] = None,
    ):
        self.redis = redis_client
        self.timeout = timeout
        self.prefix = prefix
        self.clock = clock or utcnow

    def _key(self, identity: Optional[str]) -> str:
        return f"{self.prefix}:{identity or ANONYMOUS}"

    async def append(self, event: AuditEvent) -> None:
        key = self._key(event.identity)
        now = self.clock()
        retention_seconds = max(1, int((event.retention_until - now).total_seconds()))
        retention_cutoff = now.timestamp() - retention_seconds
        member = json.dumps(event.to_dict(), sort_keys=True, default=str)

        pipe = self.redis.pipeline(transaction=True)
        pipe.zadd(key, {member: event.timestamp.timestamp()})
        pipe.zremrangebyscore(key, "-inf", retention_cutoff)
        pipe.expire(key, retention_seconds)
        await call_with_timeout(pipe.execute(), self.timeout, "audit_sink")

    async def events_for(
        self,
        identity: str,
        since: datetime,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEvent]:
        max_score = until.timestamp() if until else "+inf"
        if limit:
            raw = await call_with_timeout(
                self.redis.zrevrangebyscore(
                    self._key(identity), max_score, since.timestamp(), start=0, num=limit
                ),
                self.timeout,
                "audit_sink",
            )
            raw = list(reversed(raw))
        else:
            raw = await call_with_timeout(
                self.redis.zrangebyscore(self._key(identity), since.timestamp(), max_score),
                self.timeout,
                "audit_sink",
            )

        events = []
        for member in raw:
            if isinstance(member, bytes):
                member = member.decode("utf-8")
            events.append(AuditEvent.from_dict(json.loads(member)))
        return events
