"""
Tests for payment reconciliation and payment initiation.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from orderpay.core.exceptions import AlreadyExists, MissingFields, ValidationFailed
from orderpay.models import Order, OrderPaymentStatus, Payment, PaymentStatus
from orderpay.services.payment import (
    PaymentReconciler,
    PaymentStore,
    SqlOrderStore,
    WebhookEvent,
    is_captured_event,
)


def captured(data: dict, event: str = "payment.captured") -> WebhookEvent:
    return WebhookEvent(event=event, data=data, raw={"event": event, "data": data})


@pytest.fixture
def reconciler(session) -> PaymentReconciler:
    return PaymentReconciler(PaymentStore(session), SqlOrderStore(session))


@pytest.fixture
async def order(session) -> Order:
    order = Order(id="o1", restaurant_id="r1", total=100.0)
    session.add(order)
    await session.commit()
    return order


async def payment_count(session, **filters) -> int:
    stmt = select(func.count()).select_from(Payment)
    for key, value in filters.items():
        stmt = stmt.where(getattr(Payment, key) == value)
    return (await session.execute(stmt)).scalar_one()


class TestEventFilter:
    """Only captured-class events are reconciled."""

    @pytest.mark.parametrize("event", [
        "payment.captured",
        "payment.succeeded",
        "payment.success",
        "payment_intent.succeeded",
        "charge.succeeded",
        "  Payment.Captured ",
    ])
    def test_captured_events(self, event):
        assert is_captured_event(event)

    @pytest.mark.parametrize("event", ["payment.failed", "refund.created", ""])
    def test_other_events(self, event):
        assert not is_captured_event(event)

    async def test_ignored_event_writes_nothing(self, reconciler, session, order):
        outcome = await reconciler.reconcile(captured({"id": "p1", "order_id": "o1"}, "payment.failed"))

        assert outcome.handled is False
        assert await payment_count(session) == 0
        await session.refresh(order)
        assert order.payment_status == OrderPaymentStatus.UNPAID


class TestCapturedReconciliation:
    """Tests for captured payment handling."""

    async def test_replay_is_idempotent(self, reconciler, session, order):
        """Delivering p1/o1 twice should leave one record and a paid order."""
        data = {"id": "p1", "order_id": "o1", "amount": 100}

        first = await reconciler.reconcile(captured(data))
        second = await reconciler.reconcile(captured(data))

        assert first.order_updated is True
        assert second.order_updated is False
        assert first.payment_id == second.payment_id
        assert await payment_count(session, provider_payment_id="p1") == 1

        payment = await PaymentStore(session).get_by_provider_id("p1")
        assert payment.status == PaymentStatus.CAPTURED
        assert payment.order_id == "o1"
        assert payment.amount == 100.0
        assert payment.currency == "INR"
        assert payment.provider == "razorpay"

        await session.refresh(order)
        assert order.payment_status == OrderPaymentStatus.PAID

    async def test_concurrent_replays_converge(self, file_session_maker):
        """Parallel deliveries of p1/o1 on separate sessions should leave one record."""
        session_maker = file_session_maker
        async with session_maker() as session:
            session.add(Order(id="o1", restaurant_id="r1", total=100.0))
            await session.commit()

        async def deliver():
            async with session_maker() as session:
                reconciler = PaymentReconciler(PaymentStore(session), SqlOrderStore(session))
                return await reconciler.reconcile(
                    captured({"id": "p1", "order_id": "o1", "amount": 100})
                )

        outcomes = await asyncio.gather(*[deliver() for _ in range(6)])

        assert [o.error for o in outcomes] == [None] * 6
        assert len({o.payment_id for o in outcomes}) == 1
        async with session_maker() as session:
            assert await payment_count(session, provider_payment_id="p1") == 1
            order = await session.get(Order, "o1")
            assert order.payment_status == OrderPaymentStatus.PAID

    async def test_upsert_overwrites_captured_fields(self, reconciler, session, order):
        await reconciler.reconcile(captured({"id": "p1", "order_id": "o1", "amount": 100}))
        await reconciler.reconcile(captured({"id": "p1", "amount": 150, "currency": "USD"}))

        payment = await PaymentStore(session).get_by_provider_id("p1")
        assert payment.amount == 150.0
        assert payment.currency == "USD"
        assert payment.order_id == "o1"

    async def test_upsert_promotes_created_record(self, reconciler, session, order):
        created = await reconciler.create_payment("o1", 100.0, provider_payment_id="p1")
        assert created.status == PaymentStatus.CREATED

        await reconciler.reconcile(captured({"id": "p1", "order_id": "o1", "amount": 100}))

        assert await payment_count(session) == 1
        payment = await PaymentStore(session).get_by_provider_id("p1")
        assert payment.status == PaymentStatus.CAPTURED

    async def test_order_not_found(self, reconciler, session):
        """Unknown orders are logged, the payment is still recorded."""
        outcome = await reconciler.reconcile(captured({"id": "p9", "order_id": "missing"}))

        assert outcome.error is None
        assert outcome.order_found is False
        assert await payment_count(session, provider_payment_id="p9") == 1

    async def test_without_provider_id_creates_each_time(self, reconciler, session, order):
        data = {"order_id": "o1", "amount": 100}

        await reconciler.reconcile(captured(data))
        await reconciler.reconcile(captured(data))

        assert await payment_count(session, order_id="o1") == 2
        await session.refresh(order)
        assert order.payment_status == OrderPaymentStatus.PAID

    async def test_without_any_id(self, reconciler, session):
        outcome = await reconciler.reconcile(captured({"amount": 100}))

        assert outcome.handled is True
        assert outcome.payment_id is None
        assert await payment_count(session) == 0

    async def test_nested_razorpay_payload(self, reconciler, session, order):
        data = {"payment": {"entity": {"id": "pay_1", "order_id": "o1", "amount": 100, "currency": "INR"}}}
        outcome = await reconciler.reconcile(captured(data))

        assert outcome.provider_payment_id == "pay_1"
        assert outcome.order_updated is True

    async def test_internal_errors_are_swallowed(self, session):
        """Store failures are logged and reported on the outcome, never raised."""
        class BrokenOrders(SqlOrderStore):
            async def find_by_id(self, order_id):
                raise RuntimeError("orders unavailable")

        reconciler = PaymentReconciler(PaymentStore(session), BrokenOrders(session))
        outcome = await reconciler.reconcile(captured({"id": "p1", "order_id": "o1"}))

        assert outcome.error == "orders unavailable"


class TestCreatePayment:
    """Tests for client-initiated payment records."""

    async def test_create(self, reconciler):
        payment = await reconciler.create_payment("o1", 250.0, currency="USD", restaurant_id="r1")

        assert payment.status == PaymentStatus.CREATED
        assert payment.to_dict()["currency"] == "USD"
        assert payment.to_dict()["status"] == "created"

    async def test_default_currency(self, reconciler):
        payment = await reconciler.create_payment("o1", 10.0)
        assert payment.currency == "INR"

    async def test_missing_order(self, reconciler):
        with pytest.raises(MissingFields):
            await reconciler.create_payment(None, 10.0)

    async def test_non_positive_amount(self, reconciler):
        with pytest.raises(ValidationFailed):
            await reconciler.create_payment("o1", 0)

    async def test_duplicate_provider_id(self, reconciler):
        await reconciler.create_payment("o1", 10.0, provider_payment_id="p1")
        with pytest.raises(AlreadyExists):
            await reconciler.create_payment("o1", 10.0, provider_payment_id="p1")
