"""
Real Notification Service

OTP delivery through Twilio (SMS) and SendGrid (email).

Each channel is independent. A channel without credentials reports
``fallback`` and only logs the message, so staging can run with SMS wired
up and email not (or the reverse). A configured channel that refuses the
message reports ``delivered=False`` with the provider's error text.

Both SDKs are blocking; calls run in a worker thread.
"""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from orderpay.core.config import Settings, get_settings
from orderpay.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)

ACCEPTED_EMAIL_STATUSES = (200, 201, 202)


def _twilio_from_settings(settings: Settings) -> Optional[TwilioClient]:
    if settings.twilio_account_sid and settings.twilio_auth_token:
        return TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
    logger.warning("Twilio not configured; OTP SMS will only be logged")
    return None


def _sendgrid_from_settings(settings: Settings) -> Optional[SendGridAPIClient]:
    if settings.sendgrid_api_key:
        return SendGridAPIClient(settings.sendgrid_api_key)
    logger.warning("SendGrid not configured; email codes will only be logged")
    return None


class RealNotificationService(BaseNotificationService):
    """
    Twilio/SendGrid sender.

    Args:
        twilio_client: Pre-built Twilio client (built from settings if omitted)
        sendgrid_client: Pre-built SendGrid client (built from settings if omitted)
    """

    def __init__(self, twilio_client=None, sendgrid_client=None):
        settings = get_settings()
        self.twilio_client = twilio_client or _twilio_from_settings(settings)
        self.sendgrid_client = sendgrid_client or _sendgrid_from_settings(settings)
        self.sms_from = settings.twilio_phone_number
        self.email_from = settings.sendgrid_from_email

        channels = [
            name for name, client in (("sms", self.twilio_client), ("email", self.sendgrid_client))
            if client is not None
        ]
        logger.info(f"RealNotificationService ready (channels: {channels or 'none'})")

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        if self.twilio_client is None:
            logger.info(f"DEV SMS to {to_phone}: {message}")
            return NotificationResult(delivered=False, fallback=True, provider="twilio")

        try:
            sent = await asyncio.to_thread(
                self.twilio_client.messages.create,
                to=to_phone,
                from_=self.sms_from,
                body=message,
            )
        except TwilioException as e:
            logger.error(f"Twilio rejected SMS to {to_phone}: {e}")
            return NotificationResult(delivered=False, error_message=str(e), provider="twilio")

        logger.info(f"SMS to {to_phone} accepted by Twilio (sid {sent.sid})")
        return NotificationResult(delivered=True, message_id=sent.sid, provider="twilio")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        if self.sendgrid_client is None:
            logger.info(f"DEV email to {to_email}: {body_text or subject}")
            return NotificationResult(delivered=False, fallback=True, provider="sendgrid")

        mail = Mail(
            from_email=self.email_from,
            to_emails=to_email,
            subject=subject,
            html_content=body_html,
            plain_text_content=body_text,
        )
        try:
            response = await asyncio.to_thread(self.sendgrid_client.send, mail)
        except Exception as e:
            # python-http-client raises one HTTPError subclass per status code
            logger.error(f"SendGrid rejected email to {to_email}: {e}")
            return NotificationResult(delivered=False, error_message=str(e), provider="sendgrid")

        accepted = response.status_code in ACCEPTED_EMAIL_STATUSES
        logger.info(f"Email to {to_email}: SendGrid status {response.status_code}")
        return NotificationResult(
            delivered=accepted,
            message_id=response.headers.get("X-Message-Id"),
            error_message=None if accepted else f"status {response.status_code}",
            provider="sendgrid",
        )

    async def health_check(self) -> bool:
        """SMS is the channel OTP login depends on; probe the Twilio account."""
        if self.twilio_client is None:
            return False
        try:
            await asyncio.to_thread(
                self.twilio_client.api.accounts(self.twilio_client.username).fetch
            )
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
        return True
