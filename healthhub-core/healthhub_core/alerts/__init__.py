"""
Alerts Module
=============
Notification of serious compliance violations.
"""

from .models import AlertNotification
from .publisher import (
    AlertChannelUnavailable,
    AlertDeliveryError,
    AlertPublisher,
    AlertRejected,
    InMemoryAlertPublisher,
    WebhookAlertPublisher,
)
from .dispatcher import AlertDispatcher

__all__ = [
    "AlertNotification",
    "AlertPublisher",
    "InMemoryAlertPublisher",
    "WebhookAlertPublisher",
    "AlertDeliveryError",
    "AlertChannelUnavailable",
    "AlertRejected",
    "AlertDispatcher",
]
