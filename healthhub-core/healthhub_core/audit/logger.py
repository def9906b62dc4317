"""
Audit Logger
=============
Builds immutable audit events, writes them to the sink and hands them to
listeners (the compliance pipeline).

Writes are best effort from the caller's point of view: a sink failure is
logged and counted but does not fail the request that produced the event,
unless the logger is configured to fail closed.
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from ..clock import Clock, utcnow
from ..errors import StoreUnavailable
from ..metrics import AUDIT_WRITE_FAILURES
from ..timeouts import call_with_timeout
from .event_types import AuditAction, AuditEventType, RiskLevel
from .hashing import compute_event_hash
from .models import AuditEvent
from .sink import AuditSink

logger = structlog.get_logger(__name__)

AuditListener = Callable[[AuditEvent], None]


def assess_risk(
    event_type: AuditEventType,
    action: str,
    success: bool,
    metadata: Dict[str, Any],
) -> RiskLevel:
    """Risk level assigned to an event at creation time."""
    if action == AuditAction.AUTH_ACCOUNT_LOCKED.value or metadata.get("locked"):
        return RiskLevel.HIGH
    if not success:
        return RiskLevel.MEDIUM
    if event_type in (AuditEventType.DATA_MODIFICATION, AuditEventType.SYSTEM_ACCESS):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class AuditLogger:
    """
    High-level audit logging interface.

    Tracks the previous hash to maintain chain integrity within this
    process.
    """

    def __init__(
        self,
        sink: AuditSink,
        service_name: str,
        retention_seconds: int,
        timeout: float = 2.0,
        fail_closed: bool = False,
        clock: Optional[Clock] = None,
    ):
        self.sink = sink
        self.service_name = service_name
        self.retention_seconds = retention_seconds
        self.timeout = timeout
        self.fail_closed = fail_closed
        self.clock = clock or utcnow
        self._previous_hash: Optional[str] = None
        self._listeners: List[AuditListener] = []
        self._chain_lock = asyncio.Lock()

    def set_previous_hash(self, hash_value: str) -> None:
        """Set the previous hash (e.g., from the sink on startup)."""
        self._previous_hash = hash_value

    def add_listener(self, listener: AuditListener) -> None:
        """Register a callback run for every durably recorded event.

        Listeners must not block; they typically enqueue the event.
        """
        self._listeners.append(listener)

    async def record(
        self,
        event_type: AuditEventType,
        action: Union[AuditAction, str],
        identity: Optional[str],
        success: bool,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        risk_level: Optional[RiskLevel] = None,
    ) -> AuditEvent:
        """
        Create and persist an audit event.

        Args:
            event_type: Event category
            action: Action name
            identity: Acting identity (None for anonymous)
            success: Whether the action succeeded or was granted
            origin: Client network address
            user_agent: Client agent string
            resource_id: Affected resource id
            resource_type: Affected resource type
            metadata: Additional event data (JSON serializable)
            risk_level: Override for the computed risk level

        Returns:
            The created AuditEvent

        Raises:
            StoreUnavailable: only when configured to fail closed
        """
        metadata = dict(metadata or {})
        action_str = action.value if isinstance(action, AuditAction) else action

        # The chain advances only past events the sink accepted
        async with self._chain_lock:
            timestamp = self.clock()
            event = AuditEvent(
                id=str(uuid.uuid4()),
                event_type=event_type,
                action=action_str,
                identity=identity,
                timestamp=timestamp,
                success=success,
                risk_level=risk_level or assess_risk(event_type, action_str, success, metadata),
                service=self.service_name,
                retention_until=timestamp + timedelta(seconds=self.retention_seconds),
                resource_id=resource_id,
                resource_type=resource_type,
                origin=origin,
                user_agent=user_agent,
                metadata=metadata,
                previous_hash=self._previous_hash,
            )
            event = replace(event, hash=compute_event_hash(event))

            try:
                await call_with_timeout(self.sink.append(event), self.timeout, "audit_sink")
            except StoreUnavailable as e:
                AUDIT_WRITE_FAILURES.inc()
                logger.error(
                    "audit_write_failed",
                    event_id=event.id,
                    action=event.action,
                    error=str(e),
                )
                if self.fail_closed:
                    raise
                return event

            self._previous_hash = event.hash

        logger.info(
            "Audit event logged",
            event_id=event.id,
            event_type=event.event_type.value,
            action=event.action,
            success=success,
        )

        for listener in self._listeners:
            listener(event)

        return event
