"""Redis sorted-set sliding window rate limiter (shared backend).

Every admitted request is stored as a member of a per-key sorted set scored
by its timestamp in milliseconds. A single Lua script trims members older
than the window, counts the rest and adds the new member only when under
quota, so check-and-increment is atomic across server instances.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from storefront.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitBackendError,
    RateLimitConfig,
    RateLimitResult,
)

logger = logging.getLogger(__name__)


SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local max_requests = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window_ms)
local current = redis.call('ZCARD', key)

if current >= max_requests then
  local reset_time = now + window_ms
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  if oldest[2] then
    reset_time = tonumber(oldest[2]) + window_ms
  end
  return {0, 0, reset_time}
end

redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, window_ms)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {1, max_requests - current - 1, tonumber(oldest[2]) + window_ms}
"""


class RedisSlidingWindowRateLimiter(AbstractRateLimitBackend):
    """Distributed sliding window limiter backed by Redis sorted sets."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = client
        self._timeout = timeout_seconds
        self._clock = clock
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> "RedisSlidingWindowRateLimiter":
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
        )
        return cls(client, timeout_seconds=timeout_seconds, clock=clock)

    async def ping(self) -> bool:
        """Health check used when the limiter starts.

        Returns:
            True when Redis answered within the timeout, False otherwise.
        """
        try:
            return bool(await asyncio.wait_for(self._redis.ping(), self._timeout))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning(
                "rate_limit.redis_ping_failed",
                extra={"error_type": type(exc).__name__},
            )
            return False

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = int(self._clock() * 1000)
        member = f"{now}:{uuid.uuid4().hex}"

        try:
            raw = await asyncio.wait_for(
                self._script(
                    keys=[key],
                    args=[now, config.window_ms, config.max_requests, member],
                ),
                self._timeout,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise RateLimitBackendError(f"redis rate limit check failed: {type(exc).__name__}") from exc

        allowed, remaining, reset_time = (int(value) for value in raw)

        if allowed:
            return RateLimitResult.allowed(
                limit=config.max_requests,
                remaining=remaining,
                reset_time=reset_time,
            )
        return RateLimitResult.blocked(
            limit=config.max_requests,
            reset_time=reset_time,
            now_ms=now,
        )

    async def close(self) -> None:
        await self._redis.aclose()
