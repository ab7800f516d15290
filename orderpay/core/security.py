"""
Security Utilities

Argon2id hashing for passwords and OTP codes, and JWT access tokens.

Argon2id is memory-hard, so every hash/verify runs in a worker thread to
keep the event loop free. Nothing here touches the database; callers must
not hold a transaction open while awaiting these helpers.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import jwt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from orderpay.core.config import get_settings
from orderpay.core.exceptions import InvalidToken

logger = logging.getLogger(__name__)


# =============================================================================
# ARGON2ID HASHING
# =============================================================================

@lru_cache(maxsize=1)
def get_hasher() -> PasswordHasher:
    """Get the Argon2id hasher configured from settings."""
    settings = get_settings()
    return PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
        hash_len=32,
        salt_len=16,
        type=Type.ID,
    )


def reset_hasher() -> None:
    """Drop the cached hasher so new settings take effect."""
    get_hasher.cache_clear()
    _dummy_hash.cache_clear()


async def hash_secret(secret: str) -> str:
    """
    Hash a password or OTP code with a fresh random salt.

    Args:
        secret: Plain text value

    Returns:
        Encoded Argon2id hash ($argon2id$v=19$...)
    """
    if not secret:
        raise ValueError("Cannot hash an empty secret")
    return await asyncio.to_thread(get_hasher().hash, secret)


def _verify_sync(encoded: str, secret: str) -> bool:
    try:
        return get_hasher().verify(encoded, secret)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError) as e:
        logger.warning(f"Hash verification error: {e}")
        return False


async def verify_secret(encoded: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a plain value against a stored Argon2 hash.

    Returns False (never raises) for empty input or a malformed hash.
    """
    if not encoded or not secret:
        return False
    return await asyncio.to_thread(_verify_sync, encoded, secret)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return get_hasher().hash("not-a-real-password")


async def burn_verify(secret: str) -> None:
    """
    Spend the same work as a real verification against a throwaway hash.

    Used on login for unknown emails so response time does not reveal
    whether the account exists.
    """
    encoded = await asyncio.to_thread(_dummy_hash)
    await asyncio.to_thread(_verify_sync, encoded, secret or "x")


# =============================================================================
# ACCESS TOKENS (JWT)
# =============================================================================

def create_access_token(
    account_id: str,
    phone: str,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        account_id: Account identifier (stored as ``sub``)
        phone: Account phone number
        expires_delta: Lifetime (defaults to ACCESS_TOKEN_EXPIRE_HOURS)
        now: Issue time, defaults to the current UTC time

    Returns:
        str: Encoded JWT

    Example:
        >>> token = create_access_token("a1b2", "+919199999999")
        >>> decode_access_token(token)["sub"]
        'a1b2'
    """
    settings = get_settings()
    issued = now or datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(hours=settings.access_token_expire_hours)

    payload = {
        "sub": str(account_id),
        "phone": phone,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Validate a token's signature and expiry and return its claims.

    Raises:
        InvalidToken: Signature mismatch, expired, or malformed token
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT decode error: {e}")
        raise InvalidToken()
