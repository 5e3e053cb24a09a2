"""Rate limiter interfaces.

The limiter service depends on this abstraction (not the concrete storage)
so the shared Redis backend and the in-process fallback stay interchangeable.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class FailurePolicy(str, Enum):
    """What to do when the shared backend fails during a live check."""

    FALLBACK = "fallback"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class RateLimitConfig:
    """Window and quota for one operation class.

    Attributes:
        window_ms: Window length in milliseconds.
        max_requests: Requests admitted per window.
        key_prefix: Namespace prepended to every client identifier.
        failure_policy: Behaviour when the shared backend breaks mid-check.
    """

    window_ms: int
    max_requests: int
    key_prefix: str = "ratelimit"
    failure_policy: FailurePolicy = FailurePolicy.FALLBACK

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        success: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_time: UNIX epoch milliseconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    success: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after_seconds: int | None = None

    @classmethod
    def allowed(cls, *, limit: int, remaining: int, reset_time: int) -> "RateLimitResult":
        return cls(
            success=True,
            limit=limit,
            remaining=max(0, remaining),
            reset_time=int(reset_time),
        )

    @classmethod
    def blocked(cls, *, limit: int, reset_time: int, now_ms: int) -> "RateLimitResult":
        retry_after = max(0, math.ceil((reset_time - now_ms) / 1000))
        return cls(
            success=False,
            limit=limit,
            remaining=0,
            reset_time=int(reset_time),
            retry_after_seconds=retry_after,
        )


class RateLimitBackendError(Exception):
    """Raised by a backend whose store cannot be reached."""


class AbstractRateLimitBackend(ABC):
    """Interface for rate limit storage backends."""

    @abstractmethod
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Check and consume one unit of budget for ``key``.

        Args:
            key: Fully namespaced limiter key (prefix and identifier).
            config: Window and quota to enforce.

        Returns:
            RateLimitResult describing whether it was allowed.

        Raises:
            RateLimitBackendError: If the underlying store is unavailable.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources."""
