"""In-memory token-bucket rate limiter for the OAuth endpoints.

One limiter guards the endpoints an anonymous caller can hammer
(authorize, token, register), keyed by client IP. Its rate and burst come
from ``Settings.auth_rate_per_second`` / ``Settings.auth_rate_burst``; the
number of tracked clients is capped by ``Settings.auth_rate_max_clients``.
"""

from __future__ import annotations

import math
import time

__all__ = [
    "RateLimiter",
    "RateLimitInfo",
    "get_auth_limiter",
    "reset_auth_limiter",
]


class _Bucket:
    """A single token bucket for one client."""

    __slots__ = ("tokens", "last_refill")

    def __init__(self, capacity: float, now: float):
        self.tokens: float = capacity
        self.last_refill: float = now


class RateLimitInfo:
    """Rate limit state returned by ``check()``."""

    __slots__ = ("allowed", "limit", "remaining", "reset_after")

    def __init__(self, allowed: bool, limit: int, remaining: int, reset_after: float):
        self.allowed = allowed
        self.limit = limit
        self.remaining = remaining
        self.reset_after = reset_after

    def headers(self) -> dict[str, str]:
        """Return rate-limit response headers (RFC 6585 style)."""
        h: dict[str, str] = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }
        if not self.allowed:
            h["Retry-After"] = str(math.ceil(self.reset_after))
        return h


class RateLimiter:
    """Token-bucket rate limiter keyed by client identifier (IP address).

    Parameters
    ----------
    rate : float
        Tokens added per second.
    capacity : int
        Maximum burst size (bucket capacity).
    max_buckets : int
        Upper bound on tracked clients. When reached, refilled buckets are
        dropped first, then the least recently seen ones.
    """

    def __init__(self, rate: float, capacity: int, max_buckets: int = 10_000):
        self.rate = rate
        self.capacity = capacity
        self.max_buckets = max_buckets
        self._buckets: dict[str, _Bucket] = {}

    def allow(self, key: str) -> bool:
        """Return True if the request is allowed, consuming one token."""
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitInfo:
        """Check rate limit and return detailed info with header values."""
        now = time.monotonic()

        bucket = self._buckets.get(key)
        if bucket is None:
            if len(self._buckets) >= self.max_buckets:
                self._prune(now)
            bucket = self._buckets[key] = _Bucket(self.capacity, now)

        # Refill tokens since last check
        elapsed = now - bucket.last_refill
        bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.rate)
        bucket.last_refill = now

        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            remaining = int(bucket.tokens)
            reset_after = (self.capacity - bucket.tokens) / self.rate
            return RateLimitInfo(True, self.capacity, remaining, reset_after)

        # Denied; compute time until next token
        reset_after = (1.0 - bucket.tokens) / self.rate
        return RateLimitInfo(False, self.capacity, 0, reset_after)

    def _prune(self, now: float) -> None:
        """Make room for one more bucket."""
        # A bucket that has refilled completely is equivalent to a new one.
        full = [
            k
            for k, b in self._buckets.items()
            if b.tokens + (now - b.last_refill) * self.rate >= self.capacity
        ]
        for k in full:
            del self._buckets[k]
        excess = len(self._buckets) - self.max_buckets + 1
        if excess > 0:
            oldest = sorted(self._buckets, key=lambda k: self._buckets[k].last_refill)
            for k in oldest[:excess]:
                del self._buckets[k]


_auth_limiter: RateLimiter | None = None


def get_auth_limiter() -> RateLimiter:
    """Return the OAuth endpoint limiter, initialized from config on first call."""
    global _auth_limiter
    if _auth_limiter is None:
        from axiom.config import get_settings

        settings = get_settings()
        _auth_limiter = RateLimiter(
            rate=settings.auth_rate_per_second,
            capacity=settings.auth_rate_burst,
            max_buckets=settings.auth_rate_max_clients,
        )
    return _auth_limiter


def reset_auth_limiter() -> None:
    global _auth_limiter
    _auth_limiter = None
