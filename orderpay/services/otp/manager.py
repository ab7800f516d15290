"""
OTP Manager

Issues and verifies phone one-time passwords.

Security properties:
    - Codes come from ``secrets`` and are stored only as Argon2id hashes
    - A challenge allows OTP_ATTEMPT_LIMIT guesses within OTP_EXPIRY_SECONDS
    - A successful verification deletes the challenge (single use)
    - Codes are never returned to the caller, even in development fallback
      mode, where they are only written to the server log

Verification order (first failing check wins):
    1. no challenge          -> NoChallenge
    2. attempts >= limit     -> TooManyAttempts (until a fresh issue)
    3. now >= expires_at     -> Expired
    4. code mismatch         -> WrongCode, or TooManyAttempts when this
                                guess used up the last attempt
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from orderpay.core.config import get_settings
from orderpay.core.exceptions import (
    Expired,
    MissingFields,
    NoChallenge,
    NotificationFailed,
    TooManyAttempts,
    ValidationFailed,
    WrongCode,
)
from orderpay.core.security import hash_secret, verify_secret
from orderpay.models import HashedOtp, OtpSecret, PlaintextOtp
from orderpay.services.notifications import BaseNotificationService
from orderpay.services.otp.store import OtpStore

logger = logging.getLogger(__name__)

MIN_DIGITS = 4
MAX_DIGITS = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite returns naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_numeric_code(digits: int = 6) -> str:
    """Uniformly random numeric code, left-padded with zeros."""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


@dataclass
class IssueOutcome:
    """What the caller may know about an issuance (never the code)."""
    phone: str
    expires_at: datetime
    fallback: bool


class OtpManager:
    """
    Issue, verify and sweep OTP challenges.

    Args:
        store: Challenge persistence
        notifier: Notification sender used to deliver codes
        expiry_seconds: Challenge lifetime
        attempt_limit: Wrong guesses allowed per challenge
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        store: OtpStore,
        notifier: BaseNotificationService,
        expiry_seconds: int = 90,
        attempt_limit: int = 5,
        default_digits: int = 6,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.expiry_seconds = expiry_seconds
        self.attempt_limit = attempt_limit
        self.default_digits = default_digits
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        store: OtpStore,
        notifier: BaseNotificationService,
    ) -> "OtpManager":
        settings = get_settings()
        return cls(
            store=store,
            notifier=notifier,
            expiry_seconds=settings.otp_expiry_seconds,
            attempt_limit=settings.otp_attempt_limit,
            default_digits=settings.otp_default_digits,
        )

    # =========================================================================
    # ISSUE
    # =========================================================================

    async def issue(self, phone: Optional[str], digits: Optional[int] = None) -> IssueOutcome:
        """
        Create (or replace) the challenge for ``phone`` and send the code.

        Raises:
            MissingFields: phone not supplied
            ValidationFailed: digits outside 4..10
            NotificationFailed: the real delivery channel rejected the
                message; the stored challenge stays valid
        """
        phone = (phone or "").strip()
        if not phone:
            raise MissingFields("phone is required")

        digits = digits or self.default_digits
        if not MIN_DIGITS <= digits <= MAX_DIGITS:
            raise ValidationFailed(f"digits must be between {MIN_DIGITS} and {MAX_DIGITS}")

        code = generate_numeric_code(digits)
        code_hash = await hash_secret(code)
        expires_at = self.clock() + timedelta(seconds=self.expiry_seconds)

        await self.store.replace(phone, code_hash, expires_at)
        logger.info(f"OTP issued for {phone} (expires {expires_at.isoformat()})")

        message = (
            f"Your verification code is {code}. "
            f"It will expire in {self.expiry_seconds} seconds."
        )
        try:
            result = await self.notifier.send(phone, message)
        except Exception as e:
            logger.exception(f"SMS send error for {phone}")
            raise NotificationFailed(f"Failed to send SMS: {e}") from e

        if result.fallback:
            logger.warning(f"DEV OTP for {phone}: {code} (no delivery channel configured)")
            return IssueOutcome(phone=phone, expires_at=expires_at, fallback=True)

        if not result.delivered:
            logger.error(f"SMS delivery failed for {phone}: {result.error_message}")
            raise NotificationFailed(
                f"Failed to send SMS: {result.error_message or 'provider rejected message'}"
            )

        return IssueOutcome(phone=phone, expires_at=expires_at, fallback=False)

    # =========================================================================
    # VERIFY
    # =========================================================================

    async def verify(self, phone: Optional[str], code: Optional[str]) -> dict:
        """
        Check a code against the live challenge and consume it on success.

        Returns:
            {"phone": phone}

        Raises:
            MissingFields, NoChallenge, TooManyAttempts, Expired, WrongCode
        """
        phone = (phone or "").strip()
        code = (code or "").strip()
        if not phone or not code:
            raise MissingFields("phone and otp required")

        return await self._verify(phone, code, follow_reissue=True)

    async def _verify(self, phone: str, code: str, follow_reissue: bool) -> dict:
        record = await self.store.get(phone)
        if record is None:
            raise NoChallenge()

        if record.attempts >= self.attempt_limit:
            logger.warning(f"OTP locked for {phone} ({record.attempts} attempts)")
            raise TooManyAttempts()

        if self.clock() >= as_utc(record.expires_at):
            raise Expired()

        issue_id = record.issue_id
        secret = record.secret

        # Count the guess before the slow comparison so concurrent guesses
        # can never exceed the limit.
        attempts = await self.store.reserve_attempt(phone, issue_id, self.attempt_limit)
        if attempts is None:
            current = await self.store.get(phone)
            if current is None:
                raise NoChallenge()
            if current.issue_id != issue_id and follow_reissue:
                return await self._verify(phone, code, follow_reissue=False)
            raise TooManyAttempts()

        if not await self._matches(secret, code):
            logger.warning(f"Wrong OTP for {phone} (attempt {attempts}/{self.attempt_limit})")
            if attempts >= self.attempt_limit:
                raise TooManyAttempts()
            raise WrongCode()

        if not await self.store.delete(phone, issue_id):
            # Consumed or replaced by a concurrent request
            raise NoChallenge()

        logger.info(f"OTP verified for {phone}")
        return {"phone": phone}

    async def _matches(self, secret: OtpSecret, code: str) -> bool:
        if isinstance(secret, PlaintextOtp):
            return hmac.compare_digest(secret.code.encode(), code.encode())
        if isinstance(secret, HashedOtp):
            return await verify_secret(secret.code_hash, code)
        raise TypeError(f"Unknown OTP secret variant: {secret!r}")

    # =========================================================================
    # CLEANUP
    # =========================================================================

    async def cleanup(self) -> int:
        """Delete every challenge that has already expired. Returns the count."""
        removed = await self.store.delete_expired(self.clock())
        if removed:
            logger.info(f"cleanup_expired_otps removed {removed} expired otps")
        return removed
