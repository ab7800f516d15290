"""
Pydantic Schemas for Request/Response Validation

Request fields are optional on purpose: absent or blank values reach the
services, which report them as ``missing_fields`` rather than letting
pydantic answer with a generic validation error.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


# =============================================================================
# AUTH REQUEST SCHEMAS
# =============================================================================

class SendOtpRequest(BaseModel):
    """Request an OTP for a phone number."""
    phone: Optional[str] = Field(None, max_length=20, examples=["+919199999999"])
    digits: Optional[int] = Field(None, examples=[6])


class VerifyOtpRequest(BaseModel):
    """Submit a received OTP."""
    phone: Optional[str] = Field(None, max_length=20, examples=["+919199999999"])
    otp: Optional[str] = Field(None, max_length=10, examples=["123456"])


class SignupRequest(BaseModel):
    """Create an account with a password."""
    name: Optional[str] = Field(None, max_length=100, examples=["Asha"])
    email: Optional[str] = Field(None, max_length=255, examples=["a@x.com"])
    phone: Optional[str] = Field(None, max_length=20, examples=["555"])
    password: Optional[str] = Field(None, max_length=256)


class LoginRequest(BaseModel):
    """Email/password login."""
    email: Optional[str] = Field(None, max_length=255, examples=["a@x.com"])
    password: Optional[str] = Field(None, max_length=256)


# =============================================================================
# AUTH RESPONSE SCHEMAS
# =============================================================================

class SendOtpResponse(BaseModel):
    success: bool = True
    message: str


class VerifyOtpResponse(BaseModel):
    success: bool = True
    phone: str


class AccountPublic(BaseModel):
    """Public account fields (never the password hash)."""
    id: str
    name: str
    email: str
    phone: str


class CredentialResponse(BaseModel):
    """Returned by signup and login."""
    success: bool = True
    token: str
    user: AccountPublic


class MeResponse(BaseModel):
    success: bool = True
    account_id: str
    phone: Optional[str] = None


# =============================================================================
# PAYMENT SCHEMAS
# =============================================================================

class CreatePaymentRequest(BaseModel):
    """Client-initiated payment record."""
    order_id: Optional[str] = Field(None, max_length=64, examples=["o1"])
    amount: Optional[float] = Field(None, examples=[499.0])
    currency: Optional[str] = Field(None, max_length=10, examples=["INR"])
    restaurant_id: Optional[str] = Field(None, max_length=64)
    provider_payment_id: Optional[str] = Field(None, max_length=100)


class PaymentResponse(BaseModel):
    id: str
    order_id: Optional[str] = None
    restaurant_id: Optional[str] = None
    provider: Optional[str] = None
    provider_payment_id: Optional[str] = None
    amount: Optional[float] = None
    currency: str
    status: str

    class Config:
        from_attributes = True


class CreatePaymentResponse(BaseModel):
    success: bool = True
    data: PaymentResponse


class WebhookAck(BaseModel):
    """Acknowledgement returned to the gateway once a webhook authenticated."""
    ok: bool = True


# =============================================================================
# ADMIN & SYSTEM SCHEMAS
# =============================================================================

class CleanupResponse(BaseModel):
    success: bool = True
    removed: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    code: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    rate_limiter: str
    webhook_mode: str
    timestamp: datetime
