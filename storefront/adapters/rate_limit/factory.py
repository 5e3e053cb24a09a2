"""Factory for the process-wide rate limiter."""

from __future__ import annotations

import time
from typing import Callable

from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from storefront.adapters.rate_limit.limiter import RateLimiter
from storefront.adapters.rate_limit.redis_sliding_window import RedisSlidingWindowRateLimiter
from storefront.core.config import RateLimitSettings, settings


def create_rate_limiter(
    rate_limit_settings: RateLimitSettings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    """Build the limiter strategy from configuration.

    A Redis backend is attached only when ``redis_url`` is set; its ping is
    the health check run by ``RateLimiter.start()``. No connection is opened
    here.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.
        clock: Time source shared by both backends.

    Returns:
        RateLimiter: Unstarted limiter instance.
    """
    cfg = rate_limit_settings or settings.rate_limit

    fallback = InMemoryFixedWindowRateLimiter(
        max_entries=cfg.max_memory_entries,
        clock=clock,
    )

    if not cfg.redis_url:
        return RateLimiter(fallback=fallback, clock=clock)

    primary = RedisSlidingWindowRateLimiter.from_url(
        cfg.redis_url,
        timeout_seconds=cfg.backend_timeout_seconds,
        clock=clock,
    )
    return RateLimiter(
        fallback=fallback,
        primary=primary,
        health_check=primary.ping,
        retry_seconds=cfg.backend_retry_seconds,
        clock=clock,
    )
