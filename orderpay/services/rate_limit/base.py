"""
Rate Limiter Interface

Sliding-window limiting for the auth routes, keyed per identity (phone
when the request carries one, client address otherwise). Independent of
the per-challenge OTP attempt counter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class RateLimitInfo:
    """Decision and quota for one request."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: int
    retry_after: Optional[int] = None


class BaseRateLimiter(ABC):
    """Sliding window limiter: at most ``rate`` hits per ``window`` seconds."""

    def __init__(self, rate: int = 60, window: int = 60):
        self.rate = rate
        self.window = window

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @abstractmethod
    async def hit(self, key: str) -> RateLimitInfo:
        """Record one request for ``key`` unless the window is full."""
        pass

    def key_for(self, scope: str, identity: str) -> str:
        """Generate a rate limit key."""
        return f"ratelimit:{scope}:{identity}"
