"""
Violation Store
===============
Persistence for compliance violations and their review status.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from ..timeouts import call_with_timeout
from .models import ComplianceViolation, ViolationStatus, ViolationType

logger = structlog.get_logger(__name__)


class ViolationStore(ABC):
    """Durable store of raised violations."""

    @abstractmethod
    async def save(self, violation: ComplianceViolation) -> None:
        ...

    @abstractmethod
    async def get(self, violation_id: str) -> Optional[ComplianceViolation]:
        ...

    @abstractmethod
    async def find_recent(
        self,
        identity: Optional[str],
        violation_type: ViolationType,
        since: datetime,
    ) -> List[ComplianceViolation]:
        """Violations of ``violation_type`` for ``identity`` raised at or after ``since``."""

    @abstractmethod
    async def has_source_event(self, event_id: str) -> bool:
        """True if any violation was already raised for this audit event."""

    @abstractmethod
    async def update_status(
        self, violation_id: str, status: ViolationStatus
    ) -> Optional[ComplianceViolation]:
        """Move a violation through review. Returns None if it does not exist."""

    @abstractmethod
    async def list(
        self,
        status: Optional[ViolationStatus] = None,
        limit: int = 100,
    ) -> List[ComplianceViolation]:
        """Most recent violations first."""


class InMemoryViolationStore(ViolationStore):
    """Dictionary-backed store for development and testing."""

    def __init__(self):
        self._violations: Dict[str, ComplianceViolation] = {}
        self._source_events = set()
        self._lock = asyncio.Lock()

    @property
    def violations(self) -> List[ComplianceViolation]:
        return sorted(self._violations.values(), key=lambda v: v.timestamp)

    async def save(self, violation: ComplianceViolation) -> None:
        async with self._lock:
            self._violations[violation.id] = violation
            if violation.source_event_id:
                self._source_events.add(violation.source_event_id)

    async def get(self, violation_id: str) -> Optional[ComplianceViolation]:
        return self._violations.get(violation_id)

    async def find_recent(
        self,
        identity: Optional[str],
        violation_type: ViolationType,
        since: datetime,
    ) -> List[ComplianceViolation]:
        return [
            v for v in self.violations
            if v.identity == identity
            and v.violation_type == violation_type
            and v.timestamp >= since
        ]

    async def has_source_event(self, event_id: str) -> bool:
        return event_id in self._source_events

    async def update_status(
        self, violation_id: str, status: ViolationStatus
    ) -> Optional[ComplianceViolation]:
        async with self._lock:
            violation = self._violations.get(violation_id)
            if violation is not None:
                violation.status = status
            return violation

    async def list(
        self,
        status: Optional[ViolationStatus] = None,
        limit: int = 100,
    ) -> List[ComplianceViolation]:
        matched = [v for v in reversed(self.violations) if status is None or v.status == status]
        return matched[:limit]


class RedisViolationStore(ViolationStore):
    """
    Redis-backed store.

    Violations are JSON strings at ``{prefix}:{id}``. Sorted sets scored by
    timestamp index them globally and per identity/type; a plain key marks
    source events that already produced a finding.
    """

    def __init__(
        self,
        redis_client,
        timeout: float = 2.0,
        prefix: str = "compliance:violation",
        retention_seconds: Optional[int] = None,
    ):
        self.redis = redis_client
        self.timeout = timeout
        self.prefix = prefix
        self.retention_seconds = retention_seconds

    def _key(self, violation_id: str) -> str:
        return f"{self.prefix}:{violation_id}"

    def _index_key(self, identity: Optional[str], violation_type: ViolationType) -> str:
        return f"{self.prefix}:index:{identity or 'anonymous'}:{violation_type.value}"

    def _source_key(self, event_id: str) -> str:
        return f"{self.prefix}:source:{event_id}"

    @property
    def _all_key(self) -> str:
        return f"{self.prefix}:all"

    async def _call(self, awaitable):
        return await call_with_timeout(awaitable, self.timeout, "violation_store")

    async def save(self, violation: ComplianceViolation) -> None:
        score = violation.timestamp.timestamp()
        pipe = self.redis.pipeline(transaction=False)
        pipe.set(
            self._key(violation.id),
            json.dumps(violation.to_dict()),
            ex=self.retention_seconds,
        )
        pipe.zadd(self._all_key, {violation.id: score})
        pipe.zadd(self._index_key(violation.identity, violation.violation_type), {violation.id: score})
        if violation.source_event_id:
            pipe.set(self._source_key(violation.source_event_id), violation.id, ex=self.retention_seconds)
        await self._call(pipe.execute())

    async def get(self, violation_id: str) -> Optional[ComplianceViolation]:
        raw = await self._call(self.redis.get(self._key(violation_id)))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return ComplianceViolation.from_dict(json.loads(raw))

    async def _load_many(self, ids) -> List[ComplianceViolation]:
        violations = []
        for violation_id in ids:
            if isinstance(violation_id, bytes):
                violation_id = violation_id.decode("utf-8")
            violation = await self.get(violation_id)
            if violation is not None:
                violations.append(violation)
        return violations

    async def find_recent(
        self,
        identity: Optional[str],
        violation_type: ViolationType,
        since: datetime,
    ) -> List[ComplianceViolation]:
        ids = await self._call(
            self.redis.zrangebyscore(
                self._index_key(identity, violation_type), since.timestamp(), "+inf"
            )
        )
        return await self._load_many(ids)

    async def has_source_event(self, event_id: str) -> bool:
        return bool(await self._call(self.redis.exists(self._source_key(event_id))))

    async def update_status(
        self, violation_id: str, status: ViolationStatus
    ) -> Optional[ComplianceViolation]:
        violation = await self.get(violation_id)
        if violation is None:
            return None
        violation.status = status
        # keepttl preserves the retention expiry set on save
        await self._call(
            self.redis.set(self._key(violation.id), json.dumps(violation.to_dict()), keepttl=True)
        )
        return violation

    async def list(
        self,
        status: Optional[ViolationStatus] = None,
        limit: int = 100,
    ) -> List[ComplianceViolation]:
        if status is None:
            ids = await self._call(self.redis.zrevrange(self._all_key, 0, limit - 1))
            return await self._load_many(ids)

        ids = await self._call(self.redis.zrevrange(self._all_key, 0, -1))
        matched = []
        for violation in await self._load_many(ids):
            if violation.status == status:
                matched.append(violation)
                if len(matched) >= limit:
                    break
        return matched
