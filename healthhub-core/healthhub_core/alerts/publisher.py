"""
Alert Publishers
================
Delivery of alert notifications to an external channel.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .models import AlertNotification

logger = logging.getLogger(__name__)


class AlertDeliveryError(Exception):
    """Raised when a notification could not be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AlertChannelUnavailable(AlertDeliveryError):
    """Network failure, timeout or 5xx from the channel. Retried."""


class AlertRejected(AlertDeliveryError):
    """The channel refused the notification. Not retried."""


class AlertPublisher(ABC):
    @abstractmethod
    async def publish(self, notification: AlertNotification) -> None:
        """Deliver one notification or raise AlertDeliveryError."""

    async def aclose(self) -> None:
        return None


class InMemoryAlertPublisher(AlertPublisher):
    """Collects notifications; for development and testing."""

    def __init__(self):
        self.published: List[AlertNotification] = []

    async def publish(self, notification: AlertNotification) -> None:
        self.published.append(notification)


class WebhookAlertPublisher(AlertPublisher):
    """
    POSTs notifications as JSON to a webhook.

    Features:
    - Retries with exponential backoff on network errors and 5xx responses.
    - Bounded per-request timeout.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "User-Agent": "HealthHub-Alerts",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def publish(self, notification: AlertNotification) -> None:
        await self._post(notification.model_dump(mode="json"))

    @retry(
        retry=retry_if_exception_type(AlertChannelUnavailable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _post(self, payload: dict) -> None:
        try:
            response = await self.client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise AlertChannelUnavailable("Alert webhook timed out")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                raise AlertChannelUnavailable("Alert webhook server error", status_code=status)
            raise AlertRejected(f"Alert webhook returned HTTP {status}", status_code=status)
        except httpx.TransportError as e:
            raise AlertChannelUnavailable(f"Failed to reach alert webhook: {e}")
