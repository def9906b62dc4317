"""
Alert Dispatcher
================
Forwards HIGH and CRITICAL violations to the alert publisher from a
background worker so delivery never blocks analysis.
"""

import asyncio
from typing import Optional

import structlog

from ..compliance import ComplianceViolation
from ..metrics import ALERTS_PUBLISHED
from .models import AlertNotification
from .publisher import AlertDeliveryError, AlertPublisher

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    def __init__(self, publisher: AlertPublisher, max_queue_size: int = 1000):
        self.publisher = publisher
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._task: Optional[asyncio.Task] = None

    def dispatch(self, violation: ComplianceViolation) -> bool:
        """
        Queue an alert for a violation.

        Returns:
            True if queued, False if the severity does not alert or the
            queue is full
        """
        if not violation.severity.requires_alert:
            return False

        try:
            self._queue.put_nowait(AlertNotification.from_violation(violation))
        except asyncio.QueueFull:
            ALERTS_PUBLISHED.labels(status="dropped").inc()
            logger.error("alert_queue_full", violation_id=violation.id)
            return False
        return True

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Deliver queued alerts, then cancel the worker and close the publisher."""
        if self._task is not None:
            await self.drain()
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.publisher.aclose()

    async def drain(self) -> None:
        if self._task is None:
            while not self._queue.empty():
                await self._deliver(self._queue.get_nowait())
            return
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: AlertNotification) -> None:
        try:
            await self.publisher.publish(notification)
        except AlertDeliveryError as e:
            ALERTS_PUBLISHED.labels(status="failed").inc()
            logger.error(
                "alert_delivery_failed",
                violation_id=notification.violation_id,
                violation_type=notification.violation_type.value,
                error=str(e),
            )
            return

        ALERTS_PUBLISHED.labels(status="sent").inc()
        logger.info(
            "alert_published",
            violation_id=notification.violation_id,
            violation_type=notification.violation_type.value,
            severity=notification.severity.value,
        )
