"""Rate limiting adapters.

Two interchangeable storage backends (a Redis sorted-set sliding window and
an in-process fixed window) behind one interface, plus the limiter service
that selects between them.
"""

from storefront.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    FailurePolicy,
    RateLimitBackendError,
    RateLimitConfig,
    RateLimitResult,
)
from storefront.adapters.rate_limit.factory import create_rate_limiter
from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from storefront.adapters.rate_limit.limiter import RateLimiter
from storefront.adapters.rate_limit.redis_sliding_window import RedisSlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimitBackend",
    "FailurePolicy",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitBackendError",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiter",
    "RedisSlidingWindowRateLimiter",
    "create_rate_limiter",
]
