"""
Rate Limiter Factory

Returns the in-memory limiter in development and the Redis limiter in
staging/production, sized from AUTH_RATE_LIMIT_PER_MINUTE.
"""

import logging
from functools import lru_cache

from orderpay.core.config import get_settings
from orderpay.services.rate_limit.base import BaseRateLimiter, RateLimitInfo
from orderpay.services.rate_limit.memory import InMemoryRateLimiter
from orderpay.services.rate_limit.redis_limiter import RedisRateLimiter

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


@lru_cache()
def get_rate_limiter() -> BaseRateLimiter:
    """Get the configured auth rate limiter."""
    settings = get_settings()
    rate = settings.auth_rate_limit_per_minute

    if settings.is_development:
        logger.info(f"Rate Limiter: in-memory ({rate}/min, development mode)")
        return InMemoryRateLimiter(rate=rate, window=WINDOW_SECONDS)

    logger.info(f"Rate Limiter: redis ({rate}/min, {settings.env_mode.value} mode)")
    return RedisRateLimiter.from_url(settings.redis_url, rate=rate, window=WINDOW_SECONDS)


def reset_rate_limiter() -> None:
    """Clear the cached limiter instance."""
    get_rate_limiter.cache_clear()


__all__ = [
    "get_rate_limiter",
    "reset_rate_limiter",
    "BaseRateLimiter",
    "RateLimitInfo",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
]
