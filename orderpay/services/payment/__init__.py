"""
Payment Webhook Factory

Provides a single entry point for obtaining the webhook verifier and the
reconciler used by the payment routes.

Usage:
    from orderpay.services.payment import get_webhook_verifier, PaymentReconciler

    event = get_webhook_verifier().authenticate(raw_body, signature)
    await PaymentReconciler(PaymentStore(db), SqlOrderStore(db)).reconcile(event)

Signing modes:
    - PAYMENT_WEBHOOK_SECRET set → HMAC-SHA256 required
    - no secret + PAYMENT_WEBHOOK_INSECURE_ALLOW_UNSIGNED=true → unsigned
      accepted, logged as INSECURE
    - no secret otherwise → every webhook rejected
"""

import logging
from functools import lru_cache

from orderpay.core.config import get_settings
from orderpay.services.payment.extraction import PaymentFields, extract_payment_fields
from orderpay.services.payment.reconciler import (
    PaymentReconciler,
    ReconciliationOutcome,
    is_captured_event,
)
from orderpay.services.payment.store import BaseOrderStore, PaymentStore, SqlOrderStore
from orderpay.services.payment.webhook import (
    SIGNATURE_HEADERS,
    WebhookEvent,
    WebhookVerifier,
    compute_signature,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_webhook_verifier() -> WebhookVerifier:
    """
    Get the configured webhook verifier instance.

    Cached so the signing-mode warning is logged once per process.
    """
    settings = get_settings()
    verifier = WebhookVerifier(
        secret=settings.payment_webhook_secret,
        allow_unsigned=settings.payment_webhook_insecure_allow_unsigned,
    )
    logger.info(
        f"Webhook Verifier: {'signed' if verifier.is_signed_mode else 'UNSIGNED'} mode "
        f"({settings.env_mode.value})"
    )
    return verifier


def reset_webhook_verifier() -> None:
    """Clear the cached verifier so configuration changes take effect."""
    get_webhook_verifier.cache_clear()
    logger.debug("Webhook verifier cache cleared")


__all__ = [
    "get_webhook_verifier",
    "reset_webhook_verifier",
    "BaseOrderStore",
    "PaymentFields",
    "PaymentReconciler",
    "PaymentStore",
    "ReconciliationOutcome",
    "SIGNATURE_HEADERS",
    "SqlOrderStore",
    "WebhookEvent",
    "WebhookVerifier",
    "compute_signature",
    "extract_payment_fields",
    "is_captured_event",
]
