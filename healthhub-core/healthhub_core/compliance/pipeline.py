"""
Compliance Pipeline
===================
Queue handoff between the audit logger and the analyzer.

The request path only enqueues; a background worker loads history, runs the
rules, persists new violations and forwards HIGH/CRITICAL ones for alerting.
Redelivered events and repeat findings inside a rule's window are
suppressed, so at-least-once delivery yields each violation once.
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

import structlog

from ..audit import AuditEvent, AuditSink
from ..metrics import COMPLIANCE_VIOLATIONS
from ..timeouts import call_with_timeout
from .analyzer import ComplianceAnalyzer
from .models import ComplianceViolation
from .rules import ORIGIN_HISTORY_WINDOW, AuditHistory
from .store import ViolationStore

logger = structlog.get_logger(__name__)

HISTORY_LIMIT = 5000


class CompliancePipeline:
    """Asynchronous consumer of recorded audit events."""

    def __init__(
        self,
        sink: AuditSink,
        store: ViolationStore,
        analyzer: Optional[ComplianceAnalyzer] = None,
        dispatcher=None,
        max_queue_size: int = 10000,
        history_window: timedelta = ORIGIN_HISTORY_WINDOW,
        timeout: float = 2.0,
    ):
        """
        Args:
            sink: Audit sink used for history lookups
            store: Where violations are persisted
            analyzer: Rule set (defaults to the standard rules)
            dispatcher: AlertDispatcher for HIGH/CRITICAL findings
            max_queue_size: Events buffered before new ones are dropped
            history_window: How far back history is loaded
            timeout: Per-call timeout for sink and store
        """
        self.sink = sink
        self.store = store
        self.analyzer = analyzer or ComplianceAnalyzer()
        self.dispatcher = dispatcher
        self.history_window = history_window
        self.timeout = timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._task: Optional[asyncio.Task] = None

    def submit(self, event: AuditEvent) -> None:
        """Enqueue an event without waiting. Used as an audit listener."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error("compliance_queue_full", event_id=event.id, action=event.action)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info("compliance_pipeline_started")

    async def stop(self) -> None:
        """Finish queued events, then cancel the worker."""
        if self._task is None:
            return
        await self.drain()
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("compliance_pipeline_stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been analyzed."""
        if self._task is None:
            while not self._queue.empty():
                await self._handle(self._queue.get_nowait())
            return
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handle(event)
            finally:
                self._queue.task_done()

    async def _handle(self, event: AuditEvent) -> None:
        try:
            await self.process(event)
        except Exception:
            logger.exception("compliance_analysis_failed", event_id=event.id)

    async def _history(self, event: AuditEvent) -> AuditHistory:
        if not event.identity:
            return AuditHistory()

        events = await call_with_timeout(
            self.sink.events_for(
                event.identity,
                since=event.timestamp - self.history_window,
                until=event.timestamp,
                limit=HISTORY_LIMIT,
            ),
            self.timeout,
            "audit_sink",
        )
        # Only what was recorded before this event counts as its history
        for index, earlier in enumerate(events):
            if earlier.id == event.id:
                return AuditHistory(events[:index])
        return AuditHistory(events)

    async def _is_duplicate(self, violation: ComplianceViolation) -> bool:
        since = violation.timestamp - self.analyzer.suppress_window(violation.violation_type)
        recent = await call_with_timeout(
            self.store.find_recent(violation.identity, violation.violation_type, since),
            self.timeout,
            "violation_store",
        )
        return bool(recent)

    async def process(self, event: AuditEvent) -> List[ComplianceViolation]:
        """
        Analyze one event and persist what it raised.

        Returns:
            Newly persisted violations
        """
        already_seen = await call_with_timeout(
            self.store.has_source_event(event.id), self.timeout, "violation_store"
        )
        if already_seen:
            logger.debug("compliance_event_redelivered", event_id=event.id)
            return []

        history = await self._history(event)
        raised = []
        for violation in self.analyzer.analyze(event, history):
            if await self._is_duplicate(violation):
                logger.debug(
                    "compliance_violation_suppressed",
                    violation_type=violation.violation_type.value,
                    event_id=event.id,
                )
                continue

            await call_with_timeout(self.store.save(violation), self.timeout, "violation_store")
            COMPLIANCE_VIOLATIONS.labels(
                violation_type=violation.violation_type.value,
                severity=violation.severity.value,
            ).inc()
            logger.warning(
                "compliance_violation",
                violation_id=violation.id,
                violation_type=violation.violation_type.value,
                severity=violation.severity.value,
                identity=violation.identity,
                event_id=event.id,
            )
            if self.dispatcher is not None:
                self.dispatcher.dispatch(violation)
            raised.append(violation)

        return raised
