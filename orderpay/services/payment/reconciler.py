"""
Payment Reconciler

Brings payment records and order payment status in line with confirmed
gateway events.

Reconciliation is best-effort: once a webhook is authenticated the
gateway always gets ``200 {"ok": true}``. Problems on our side (unknown
order, payload without ids, database errors) are logged and never
surfaced, because a gateway retry cannot fix them and would only repeat
side effects.

Flow for captured-class events:
    1. Extract ids/amount/currency (see extraction.py for precedence)
    2. provider id present -> atomic upsert keyed by it (idempotent)
       only order id       -> insert a new record (no dedupe key)
    3. order id present    -> order.payment_status = paid
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from orderpay.core.config import get_settings
from orderpay.core.exceptions import AlreadyExists, MissingFields, ValidationFailed
from orderpay.models import OrderPaymentStatus, Payment, PaymentStatus
from orderpay.services.payment.extraction import extract_payment_fields
from orderpay.services.payment.store import BaseOrderStore, PaymentStore
from orderpay.services.payment.webhook import WebhookEvent

logger = logging.getLogger(__name__)

CAPTURED_EVENTS = frozenset({
    "payment.captured",
    "payment.succeeded",
    "payment.success",
    "payment_intent.succeeded",
    "charge.succeeded",
})


@dataclass
class ReconciliationOutcome:
    """What reconciliation did, for logging and tests."""
    event: str
    handled: bool = False
    payment_id: Optional[str] = None
    provider_payment_id: Optional[str] = None
    order_id: Optional[str] = None
    order_found: Optional[bool] = None
    order_updated: bool = False
    error: Optional[str] = None


def is_captured_event(event: str) -> bool:
    return event.strip().lower() in CAPTURED_EVENTS


class PaymentReconciler:
    """
    Apply gateway events to payment records and orders.

    Args:
        payments: Payment record store
        orders: Order store capability
        provider: Label stored on records created from webhooks
        default_currency: Used when an event carries no currency
    """

    def __init__(
        self,
        payments: PaymentStore,
        orders: BaseOrderStore,
        provider: Optional[str] = None,
        default_currency: Optional[str] = None,
    ):
        settings = get_settings()
        self.payments = payments
        self.orders = orders
        self.provider = provider or settings.payment_provider
        self.default_currency = default_currency or settings.default_currency

    async def reconcile(self, event: WebhookEvent) -> ReconciliationOutcome:
        """
        Reconcile one authenticated event. Never raises.
        """
        outcome = ReconciliationOutcome(event=event.event)

        if not is_captured_event(event.event):
            logger.info(f"[PAYMENT] event '{event.event}' ignored")
            return outcome

        outcome.handled = True
        try:
            await self._reconcile_captured(event, outcome)
        except Exception as e:
            outcome.error = str(e)
            logger.exception(f"[PAYMENT] reconciliation error for event '{event.event}'")
            await self.payments.session.rollback()
        return outcome

    async def _reconcile_captured(
        self,
        event: WebhookEvent,
        outcome: ReconciliationOutcome,
    ) -> None:
        fields = extract_payment_fields(event.data)
        outcome.provider_payment_id = fields.provider_payment_id
        outcome.order_id = fields.order_id
        logger.info(f"[PAYMENT] parsed fields {fields}")

        currency = fields.currency or self.default_currency
        payment: Optional[Payment] = None

        if fields.provider_payment_id:
            payment = await self.payments.upsert_captured(
                provider_payment_id=fields.provider_payment_id,
                provider=self.provider,
                amount=fields.amount,
                currency=currency,
                raw=event.raw,
                order_id=fields.order_id,
                restaurant_id=fields.restaurant_id,
            )
            logger.info(f"[PAYMENT] upserted payment for provider id {fields.provider_payment_id}")
        elif fields.order_id:
            logger.info("[PAYMENT] no providerPaymentId in payload; creating unkeyed record")
            payment = await self.payments.create(
                order_id=fields.order_id,
                restaurant_id=fields.restaurant_id,
                provider=self.provider,
                amount=fields.amount,
                currency=currency,
                status=PaymentStatus.CAPTURED,
                raw=event.raw,
            )
        else:
            logger.warning("[PAYMENT] captured event without payment or order id; nothing recorded")

        if payment is not None:
            outcome.payment_id = payment.id

        if not fields.order_id:
            logger.info("[PAYMENT] no orderId found in payload; skipping reconciliation")
            return

        logger.info(f"[PAYMENT] attempting to reconcile orderId {fields.order_id}")
        order = await self.orders.find_by_id(fields.order_id)
        if order is None:
            outcome.order_found = False
            logger.warning(f"[PAYMENT] order not found for id {fields.order_id}")
            return

        outcome.order_found = True
        if order.payment_status == OrderPaymentStatus.PAID:
            logger.info(f"[PAYMENT] order {fields.order_id} already paid")
            return

        order.payment_status = OrderPaymentStatus.PAID
        await self.orders.save(order)
        outcome.order_updated = True
        logger.info(f"[PAYMENT] reconciled order {fields.order_id} -> paymentStatus=paid")

    # =========================================================================
    # PAYMENT INITIATION
    # =========================================================================

    async def create_payment(
        self,
        order_id: Optional[str],
        amount: Optional[float],
        currency: Optional[str] = None,
        restaurant_id: Optional[str] = None,
        provider_payment_id: Optional[str] = None,
    ) -> Payment:
        """
        Record a payment initiated by the client (status ``created``).

        Raises:
            MissingFields: no order id
            ValidationFailed: non-positive amount
            AlreadyExists: provider payment id already recorded
        """
        if not order_id:
            raise MissingFields("order_id is required")
        if amount is not None and amount <= 0:
            raise ValidationFailed("Amount must be greater than 0")

        try:
            payment = await self.payments.create(
                order_id=order_id,
                restaurant_id=restaurant_id,
                provider=self.provider,
                provider_payment_id=provider_payment_id or None,
                amount=amount,
                currency=currency or self.default_currency,
                status=PaymentStatus.CREATED,
            )
        except IntegrityError:
            await self.payments.session.rollback()
            raise AlreadyExists("Payment already recorded")

        logger.info(f"Payment {payment.id} created for order {order_id}")
        return payment
