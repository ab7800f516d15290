"""
Payment Webhook Verifier

Authenticates gateway callbacks with an HMAC-SHA256 signature computed over
the exact raw request body.

Security Notes:
    - The route must hand over ``await request.body()`` untouched; parsing
      and re-serializing JSON can change bytes and break verification
    - Signatures are compared in constant time
    - Running without a secret requires the explicit
      PAYMENT_WEBHOOK_INSECURE_ALLOW_UNSIGNED flag and is logged as INSECURE
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from orderpay.core.exceptions import (
    InvalidPayload,
    InvalidSignature,
    MissingSignature,
    WebhookNotConfigured,
)

logger = logging.getLogger(__name__)

# Header names tried in order
SIGNATURE_HEADERS = ("x-razorpay-signature", "x-signature")


@dataclass
class WebhookEvent:
    """
    Generic gateway event envelope.

    Attributes:
        event: Event name (e.g. "payment.captured"), empty if absent
        data: Event body the reconciler extracts fields from
        raw: Whole parsed document, stored on the payment record
        signed: False when accepted in insecure unsigned mode
    """
    event: str
    data: dict[str, Any]
    raw: dict[str, Any] = field(default_factory=dict)
    signed: bool = True


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def parse_envelope(document: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Split a gateway document into (event name, data).

    Precedence:
        event name: ``event``, then ``type``
        data:       ``data``, then ``payload``, then the document itself
    """
    event = document.get("event") or document.get("type") or ""
    data = document.get("data")
    if not isinstance(data, dict):
        data = document.get("payload")
    if not isinstance(data, dict):
        data = document
    return str(event), data


class WebhookVerifier:
    """
    Verify and parse payment gateway webhooks.

    Args:
        secret: Shared HMAC secret; None means not configured
        allow_unsigned: Accept unsigned payloads when no secret is set
    """

    def __init__(self, secret: Optional[str], allow_unsigned: bool = False):
        self._secret = secret or None
        self.allow_unsigned = allow_unsigned

        if not self._secret:
            if allow_unsigned:
                logger.warning(
                    "INSECURE: payment webhook secret not set; "
                    "unsigned webhooks will be accepted (non-production only)"
                )
            else:
                logger.error("Payment webhook secret not set; webhooks will be rejected")

    @property
    def is_signed_mode(self) -> bool:
        return self._secret is not None

    def authenticate(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        """
        Verify the signature over ``body`` and parse the event envelope.

        Args:
            body: Raw request body bytes, exactly as received
            signature: Signature header value (hex digest)

        Returns:
            WebhookEvent

        Raises:
            MissingSignature: secret configured, header absent
            InvalidSignature: computed and provided digests differ
            WebhookNotConfigured: no secret and unsigned mode not enabled
            InvalidPayload: body is not a JSON object
        """
        signed = True
        if self._secret:
            if not signature:
                logger.warning("[PAYMENT] missing signature header")
                raise MissingSignature()

            # str compare_digest raises on non-ASCII; headers are latin-1
            computed = compute_signature(self._secret, body).encode()
            provided = signature.strip().lower().encode("utf-8", "replace")
            if not hmac.compare_digest(computed, provided):
                logger.warning("[PAYMENT] invalid signature")
                raise InvalidSignature()
        elif self.allow_unsigned:
            logger.warning("[PAYMENT] INSECURE: accepting unsigned webhook (dev only)")
            signed = False
        else:
            raise WebhookNotConfigured()

        try:
            document = json.loads(body or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("[PAYMENT] webhook body is not valid JSON")
            raise InvalidPayload()

        if not isinstance(document, dict):
            raise InvalidPayload("webhook body must be a JSON object")

        event, data = parse_envelope(document)
        logger.info(f"[PAYMENT] webhook event {event or '<none>'} (signed={signed})")
        return WebhookEvent(event=event, data=data, raw=document, signed=signed)
