"""Admission control service combining the shared and in-process backends.

The backend strategy is chosen when the limiter starts: if a shared backend
is configured and passes its health check it serves every check, otherwise
the process runs on the in-process counter alone. When the shared backend
fails during a live check, it is bypassed for ``retry_seconds`` and the
operation class's ``FailurePolicy`` decides the outcome of affected checks.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from storefront.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    FailurePolicy,
    RateLimitBackendError,
    RateLimitConfig,
    RateLimitResult,
)
from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

logger = logging.getLogger(__name__)

UNKNOWN_IDENTIFIER = "unknown"


class RateLimiter:
    """Per-process limiter instance, built once and injected into routes."""

    def __init__(
        self,
        *,
        fallback: InMemoryFixedWindowRateLimiter,
        primary: AbstractRateLimitBackend | None = None,
        health_check: Callable[[], Awaitable[bool]] | None = None,
        retry_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fallback = fallback
        self._primary = primary
        self._health_check = health_check
        self._retry_seconds = retry_seconds
        self._clock = clock
        self._primary_down_until = 0.0

    @property
    def backend_name(self) -> str:
        return "shared" if self._primary is not None else "memory"

    async def start(self) -> None:
        """Select the backend strategy.

        A shared backend that fails its health check is dropped for the
        lifetime of the process; the caller never sees the failure.
        """
        if self._primary is None:
            logger.info("rate_limit.backend_selected", extra={"backend": "memory"})
            return

        healthy = True
        if self._health_check is not None:
            healthy = await self._health_check()

        if not healthy:
            logger.warning(
                "rate_limit.backend_unreachable",
                extra={"backend": "shared", "fallback": "memory"},
            )
            await self._close_primary()
            return

        logger.info("rate_limit.backend_selected", extra={"backend": "shared"})

    async def close(self) -> None:
        await self._close_primary()

    async def check_rate_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Decide whether a request for ``identifier`` may proceed.

        Args:
            identifier: Client identity (IP address or user id). Blank values
                share the ``unknown`` bucket.
            config: Window, quota and failure policy of the operation class.

        Returns:
            RateLimitResult for this request; the request has been counted
            when it is admitted.
        """
        identifier = (identifier or "").strip() or UNKNOWN_IDENTIFIER
        key = f"{config.key_prefix}:{identifier}"

        if self._primary is None:
            return self._fallback.consume(key, config)

        if self._clock() < self._primary_down_until:
            return self._degraded(key, config)

        try:
            return await self._primary.check(key, config)
        except RateLimitBackendError as exc:
            self._primary_down_until = self._clock() + self._retry_seconds
            logger.warning(
                "rate_limit.backend_error",
                extra={
                    "error_msg": str(exc),
                    "policy": config.failure_policy.value,
                    "retry_in_s": self._retry_seconds,
                },
            )
            return self._degraded(key, config)

    def _degraded(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        policy = config.failure_policy
        if policy is FailurePolicy.FALLBACK:
            return self._fallback.consume(key, config)

        now_ms = int(self._clock() * 1000)
        reset_time = now_ms + config.window_ms
        if policy is FailurePolicy.OPEN:
            return RateLimitResult.allowed(
                limit=config.max_requests,
                remaining=config.max_requests - 1,
                reset_time=reset_time,
            )
        return RateLimitResult.blocked(
            limit=config.max_requests,
            reset_time=reset_time,
            now_ms=now_ms,
        )

    async def _close_primary(self) -> None:
        primary, self._primary = self._primary, None
        if primary is None:
            return
        try:
            await primary.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("rate_limit.backend_close_failed", extra={"error_type": type(exc).__name__})
