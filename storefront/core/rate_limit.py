"""Rate limiting dependency for FastAPI routes.

This module wires the limiter service into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency factory only.
- Injected state: the limiter is built once by the app factory and read from
  ``app.state``; nothing here holds module-level counters.
- Per-class presets: every route names the operation class it belongs to.

Rate limiting strategy:
- Anonymous routes are keyed per client IP (``ip:{addr}``).
- Per-user routes are keyed per authenticated user (``user:{id}``) and fall
  back to the IP key for anonymous callers.
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from typing import Annotated, Awaitable, Callable

from fastapi import Header, Request

from storefront.adapters.rate_limit.base import FailurePolicy, RateLimitConfig
from storefront.adapters.rate_limit.limiter import UNKNOWN_IDENTIFIER, RateLimiter
from storefront.core.auth import resolve_user_id
from storefront.core.config import RateLimitSettings, settings
from storefront.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)


class OperationClass(str, Enum):
    AUTH = "auth"
    API = "api"
    PAYMENT = "payment"
    CART = "cart"
    WEB = "web"


DENIAL_MESSAGES: dict[OperationClass, str] = {
    OperationClass.AUTH: "Too many authentication attempts, please try again later",
    OperationClass.API: "API rate limit exceeded, please try again later",
    OperationClass.PAYMENT: "Too many payment attempts, please try again later",
    OperationClass.CART: "Too many cart operations, please slow down",
    OperationClass.WEB: "Too many requests, please try again later",
}


def build_rate_limit_presets(
    rate_limit_settings: RateLimitSettings | None = None,
) -> dict[OperationClass, RateLimitConfig]:
    """Build the per-class limiter configs from settings.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.

    Returns:
        Mapping of operation class to its RateLimitConfig.
    """
    cfg = rate_limit_settings or settings.rate_limit

    presets: dict[OperationClass, RateLimitConfig] = {}
    for op in OperationClass:
        presets[op] = RateLimitConfig(
            window_ms=getattr(cfg, f"{op.value}_window_ms"),
            max_requests=getattr(cfg, f"{op.value}_max_requests"),
            key_prefix=op.value,
            failure_policy=FailurePolicy(getattr(cfg, f"{op.value}_failure_policy")),
        )
    return presets


def get_client_identifier(request: Request) -> str:
    """Extract the client address from proxy headers.

    The first X-Forwarded-For entry wins, then X-Real-IP, then
    CF-Connecting-IP. Requests with none of them share the ``unknown``
    bucket.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return (
        request.headers.get("x-real-ip")
        or request.headers.get("cf-connecting-ip")
        or UNKNOWN_IDENTIFIER
    )


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client identity."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def enforce_rate_limit(
    operation: OperationClass,
    *,
    per_user: bool = False,
) -> Callable[..., Awaitable[None]]:
    """Create a FastAPI dependency enforcing the limit of ``operation``.

    Usage:
        @router.post("/x", dependencies=[Depends(enforce_rate_limit(OperationClass.CART))])

    Args:
        operation: Operation class whose preset applies.
        per_user: Key by authenticated user id when a session is present.

    Returns:
        Async dependency raising RateLimitAppError (HTTP 429) on denial.
    """

    async def dependency(
        request: Request,
        authorization: Annotated[str | None, Header()] = None,
    ) -> None:
        if not settings.rate_limit.enabled:
            return

        limiter: RateLimiter = request.app.state.rate_limiter
        config: RateLimitConfig = request.app.state.rate_limit_presets[operation]

        user_id = resolve_user_id(request, authorization) if per_user else None
        if user_id:
            key_type, identifier = "user", f"user:{user_id}"
        else:
            key_type, identifier = "ip", f"ip:{get_client_identifier(request)}"

        result = await limiter.check_rate_limit(identifier, config)
        key_hash = _hash_limiter_key(identifier)

        if result.success:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "operation": operation.value,
                    "key_type": key_type,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "operation": operation.value,
                "key_type": key_type,
                "key_hash": key_hash,
                "limit": result.limit,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitAppError(
            code="rate_limit_exceeded",
            message=DENIAL_MESSAGES[operation],
            retry_after_seconds=retry_after,
            limit=result.limit,
            remaining=result.remaining,
            reset_time=result.reset_time,
        )

    return dependency
