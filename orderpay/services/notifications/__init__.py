"""
Notification senders for OTP delivery.

``get_notification_service()`` hands out one shared sender per process:
the mock in development, Twilio/SendGrid otherwise.
"""

import logging
from functools import lru_cache

from orderpay.core.config import get_settings
from orderpay.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from orderpay.services.notifications.mock import MockNotificationService
from orderpay.services.notifications.real import RealNotificationService

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    settings = get_settings()
    service = MockNotificationService() if settings.is_development else RealNotificationService()
    logger.info(f"Notification sender: {service.provider_name} ({settings.env_mode.value})")
    return service


def reset_notification_service() -> None:
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "reset_notification_service",
    "BaseNotificationService",
    "NotificationResult",
    "MockNotificationService",
    "RealNotificationService",
]
