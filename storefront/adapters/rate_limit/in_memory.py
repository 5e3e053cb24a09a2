"""In-memory fixed-window rate limiter (fallback backend).

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Bounded: expired entries are swept periodically and the number of tracked
  keys is capped, evicting the entries that reset soonest.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from storefront.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitConfig,
    RateLimitResult,
)

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_time: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimitBackend):
    """Rate limiter using a fixed window that starts at a key's first request.

    The first request for a key opens a window of ``config.window_ms``;
    further requests inside it increment the counter, and the first request
    at or after ``reset_time`` starts a fresh window.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        max_entries: int = 10_000,
        cleanup_interval: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            max_entries: Maximum number of keys tracked at once.
            cleanup_interval: Sweep expired entries every N checks.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If max_entries or cleanup_interval are invalid.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if cleanup_interval < 1:
            raise ValueError("cleanup_interval must be >= 1")

        self._max_entries = max_entries
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, RateLimitEntry] = {}
        self._calls = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def consume(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Check the window for ``key`` and count the request if admitted.

        Args:
            key: Namespaced limiter key.
            config: Window and quota to enforce.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._now_ms()

        with self._lock:
            self._calls += 1
            if self._calls % self._cleanup_interval == 0:
                self._evict_expired_locked(now)

            entry = self._entries.get(key)

            if entry is None or now >= entry.reset_time:
                entry = RateLimitEntry(count=1, reset_time=now + config.window_ms)
                self._entries[key] = entry
                self._evict_if_over_capacity_locked(keep=key)
                return RateLimitResult.allowed(
                    limit=config.max_requests,
                    remaining=config.max_requests - 1,
                    reset_time=entry.reset_time,
                )

            if entry.count >= config.max_requests:
                return RateLimitResult.blocked(
                    limit=config.max_requests,
                    reset_time=entry.reset_time,
                    now_ms=now,
                )

            entry.count += 1
            return RateLimitResult.allowed(
                limit=config.max_requests,
                remaining=config.max_requests - entry.count,
                reset_time=entry.reset_time,
            )

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        return self.consume(key, config)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._calls = 0

    def _evict_expired_locked(self, now: int) -> None:
        expired = [k for k, entry in self._entries.items() if entry.reset_time <= now]
        for key in expired:
            del self._entries[key]

    def _evict_if_over_capacity_locked(self, *, keep: str) -> None:
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return

        oldest = heapq.nsmallest(
            overflow,
            ((k, e) for k, e in self._entries.items() if k != keep),
            key=lambda item: item[1].reset_time,
        )
        for key, _ in oldest:
            del self._entries[key]

        logger.debug(
            "rate_limit.memory_evicted",
            extra={"evicted": overflow, "size": len(self._entries)},
        )
