"""
Domain Errors

Every failure the trust boundary reports to a caller is an OrderPayError
carrying a stable machine-readable ``code`` and the HTTP status it maps to.
The FastAPI handler in ``orderpay.main`` turns them into::

    {"success": false, "error": "<message>", "code": "<code>"}

Reconciliation-internal problems are never raised as these; they are
logged by the reconciler instead.
"""

from typing import Optional


class OrderPayError(Exception):
    """Base class for all errors surfaced to API callers."""

    code: str = "error"
    status_code: int = 400
    message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to the JSON error body."""
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
        }


# =============================================================================
# VALIDATION
# =============================================================================

class MissingFields(OrderPayError):
    code = "missing_fields"
    message = "Missing required fields"


class ValidationFailed(OrderPayError):
    code = "validation_error"
    message = "Invalid request"


# =============================================================================
# ACCOUNTS & TOKENS
# =============================================================================

class AlreadyExists(OrderPayError):
    code = "already_exists"
    message = "User already exists"


class InvalidCredentials(OrderPayError):
    """Same error for unknown account and wrong password."""
    code = "invalid_credentials"
    message = "Invalid credentials"


class InvalidToken(OrderPayError):
    code = "invalid_token"
    status_code = 401
    message = "Invalid token"


class Unauthorized(OrderPayError):
    code = "unauthorized"
    status_code = 401
    message = "Unauthorized"


# =============================================================================
# OTP
# =============================================================================

class NoChallenge(OrderPayError):
    code = "no_challenge"
    message = "No OTP requested for this number"


class Expired(OrderPayError):
    code = "otp_expired"
    message = "OTP expired"


class WrongCode(OrderPayError):
    code = "wrong_code"
    message = "Wrong OTP"


class TooManyAttempts(OrderPayError):
    code = "too_many_attempts"
    status_code = 429
    message = "Too many attempts"


class RateLimited(OrderPayError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests, try later"

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after


class NotificationFailed(OrderPayError):
    code = "notification_failed"
    status_code = 500
    message = "Failed to send SMS"


# =============================================================================
# PAYMENT WEBHOOKS
# =============================================================================

class MissingSignature(OrderPayError):
    code = "missing_signature"
    message = "missing signature"


class InvalidSignature(OrderPayError):
    code = "invalid_signature"
    message = "invalid signature"


class InvalidPayload(OrderPayError):
    code = "invalid_payload"
    message = "invalid payload"


class WebhookNotConfigured(OrderPayError):
    code = "webhook_not_configured"
    status_code = 500
    message = "Payment webhook secret is not configured"
