"""
SQLAlchemy Database Models

Tables owned by the trust boundary:
- OTP challenges (one per phone)
- Accounts
- Payment records

Plus a slim Order table; the full order lifecycle lives in the ordering
service, here only ``payment_status`` is ever written.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Union

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON
from sqlalchemy.sql import func

from orderpay.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class PaymentStatus(str, enum.Enum):
    """Payment record lifecycle."""
    CREATED = "created"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderPaymentStatus(str, enum.Enum):
    """Order-level payment state, only ever moved toward PAID here."""
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"


# =============================================================================
# OTP CHALLENGES
# =============================================================================

@dataclass(frozen=True)
class PlaintextOtp:
    """Legacy record that stored the code itself."""
    code: str


@dataclass(frozen=True)
class HashedOtp:
    """Argon2id hash of the code. Every new issuance produces this."""
    code_hash: str


OtpSecret = Union[PlaintextOtp, HashedOtp]


class OtpChallenge(Base):
    """
    Live OTP challenge for a phone number.

    ``issue_id`` changes on every issuance so that a verify racing a
    re-issue only ever updates or deletes the challenge it actually read.
    """
    __tablename__ = "otp_challenges"

    phone = Column(String(20), primary_key=True)
    code_hash = Column(String(255), nullable=True)
    code = Column(String(10), nullable=True)  # legacy plaintext
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    issue_id = Column(String(32), nullable=False, default=new_id)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def secret(self) -> OtpSecret:
        """Stored secret as a tagged variant (legacy plaintext wins)."""
        if self.code:
            return PlaintextOtp(self.code)
        return HashedOtp(self.code_hash or "")

    def __repr__(self):
        return f"<OtpChallenge {self.phone} attempts={self.attempts}>"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(Base):
    """Customer account created at signup."""
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_public(self) -> dict:
        """Fields safe to return to clients (never the password hash)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }

    def __repr__(self):
        return f"<Account {self.id} - {self.email}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """Order as seen by payment reconciliation."""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=new_id)
    restaurant_id = Column(String(64), nullable=True, index=True)
    total = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(
        Enum(OrderPaymentStatus, values_callable=lambda e: [m.value for m in e]),
        default=OrderPaymentStatus.UNPAID,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order {self.id} - {self.payment_status.value}>"


# =============================================================================
# PAYMENTS
# =============================================================================

class Payment(Base):
    """
    Payment record, one per gateway payment id.

    Records without ``provider_payment_id`` have no dedupe key; a gateway
    redelivering such an event creates another row.
    """
    __tablename__ = "payments"

    id = Column(String(32), primary_key=True, default=new_id)
    order_id = Column(String(64), nullable=True, index=True)
    restaurant_id = Column(String(64), nullable=True)
    provider = Column(String(50), nullable=True)
    provider_payment_id = Column(String(100), nullable=True, unique=True)
    amount = Column(Float, nullable=True)
    currency = Column(String(10), nullable=False, default="INR")
    status = Column(
        Enum(PaymentStatus, values_callable=lambda e: [m.value for m in e]),
        default=PaymentStatus.CREATED,
        nullable=False,
    )
    raw = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "restaurant_id": self.restaurant_id,
            "provider": self.provider,
            "provider_payment_id": self.provider_payment_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value if self.status else None,
        }

    def __repr__(self):
        return f"<Payment {self.id} - {self.provider_payment_id} - {self.status}>"
