"""
Mock Notification Service

Development sender. Nothing leaves the process: each message is appended
to ``outbox``, written to the server log and reported as ``fallback``.
``failure_rate`` makes a share of sends come back undelivered, for
exercising the NotificationFailed path by hand.
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from orderpay.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """In-process sender that records instead of delivering."""

    def __init__(self, failure_rate: float = 0.0, latency: float = 0.0):
        self.failure_rate = failure_rate
        self.latency = latency
        self.outbox: list[tuple[str, str]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _record(self, kind: str, destination: str, text: str) -> NotificationResult:
        if self.latency:
            await asyncio.sleep(random.uniform(0, self.latency))

        if self.failure_rate and random.random() < self.failure_rate:
            logger.warning(f"Mock {kind} to {destination} dropped (simulated failure)")
            return NotificationResult(
                delivered=False,
                error_message=f"Simulated {kind} failure",
                provider="mock",
            )

        self.outbox.append((destination, text))
        message_id = f"{kind}_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"DEV {kind} to {destination}: {text} ({message_id})")
        return NotificationResult(
            delivered=False,
            fallback=True,
            message_id=message_id,
            provider="mock",
        )

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        return await self._record("sms", to_phone, message)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        return await self._record("email", to_email, body_text or body_html)

    async def health_check(self) -> bool:
        return True
