"""
Notification Service Abstract Base Class

Defines the "notification sender" capability consumed by the OTP manager.
Supports both Mock (development) and Real (production) implementations.

A send reports two independent facts:
    - delivered: a real channel accepted the message
    - fallback: no real channel is configured; the message was only logged
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    delivered: bool
    fallback: bool = False
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"

    @property
    def failed(self) -> bool:
        """A real channel was tried and did not accept the message."""
        return not self.delivered and not self.fallback


def is_email(destination: str) -> bool:
    return "@" in destination


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def send(
        self,
        destination: str,
        message: str,
        subject: str = "Your verification code",
    ) -> NotificationResult:
        """
        Deliver ``message`` to a phone number or an email address.

        Email addresses (anything containing ``@``) go through send_email,
        everything else through send_sms.
        """
        if is_email(destination):
            return await self.send_email(
                to_email=destination,
                subject=subject,
                body_html=f"<p>{message}</p>",
                body_text=message,
            )
        return await self.send_sms(destination, message)
