"""
Payment and Order Stores

Order access is the "order store" capability (find by id, save) owned by
the ordering service; the SQL implementation here works on the shared
``orders`` table. Payment records are owned by this module.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderpay.database import dialect_insert
from orderpay.models import Order, Payment, PaymentStatus, new_id

logger = logging.getLogger(__name__)


# =============================================================================
# ORDER STORE
# =============================================================================

class BaseOrderStore(ABC):
    """Abstract order lookup/persistence."""

    @abstractmethod
    async def find_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        pass


class SqlOrderStore(BaseOrderStore):
    """Orders table accessed through an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, order_id: str) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def save(self, order: Order) -> None:
        self.session.add(order)
        await self.session.commit()


# =============================================================================
# PAYMENT STORE
# =============================================================================

class PaymentStore:
    """Payment records, upserted by gateway payment id."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_provider_id(self, provider_payment_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.provider_payment_id == provider_payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_captured(
        self,
        provider_payment_id: str,
        provider: str,
        amount: Optional[float],
        currency: str,
        raw: dict[str, Any],
        order_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ) -> Payment:
        """
        Create or update the record for ``provider_payment_id`` in one
        INSERT .. ON CONFLICT statement.

        Status becomes captured; amount, currency and raw are overwritten.
        Order/restaurant ids are only overwritten when the event has them.
        """
        stmt = dialect_insert(self.session, Payment).values(
            id=new_id(),
            provider_payment_id=provider_payment_id,
            provider=provider,
            order_id=order_id,
            restaurant_id=restaurant_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.CAPTURED,
            raw=raw,
        )
        updates = {
            "provider": stmt.excluded.provider,
            "amount": stmt.excluded.amount,
            "currency": stmt.excluded.currency,
            "status": stmt.excluded.status,
            "raw": stmt.excluded.raw,
            "updated_at": func.now(),
        }
        if order_id is not None:
            updates["order_id"] = stmt.excluded.order_id
        if restaurant_id is not None:
            updates["restaurant_id"] = stmt.excluded.restaurant_id

        stmt = stmt.on_conflict_do_update(
            index_elements=[Payment.provider_payment_id],
            set_=updates,
        )
        await self.session.execute(stmt)
        await self.session.commit()
        return await self.get_by_provider_id(provider_payment_id)

    async def create(
        self,
        order_id: Optional[str],
        amount: Optional[float],
        currency: str,
        status: PaymentStatus,
        provider: Optional[str] = None,
        provider_payment_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
        raw: Optional[dict[str, Any]] = None,
    ) -> Payment:
        """Insert a new record (no dedupe)."""
        payment = Payment(
            order_id=order_id,
            restaurant_id=restaurant_id,
            provider=provider,
            provider_payment_id=provider_payment_id,
            amount=amount,
            currency=currency,
            status=status,
            raw=raw,
        )
        self.session.add(payment)
        await self.session.commit()
        await self.session.refresh(payment)
        return payment

