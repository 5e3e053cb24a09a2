"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    remaining: int
    reset_time: int
    order_id: str
    payment_id: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when the caller has no valid session."""


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist for the caller."""


class PaymentGatewayAppError(AppError):
    """Raised when the payment provider API call fails."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when admission control denies a request.

    Attributes:
        retry_after_seconds: Seconds the client should wait before retrying.
        limit: Quota of the operation class.
        remaining: Remaining budget (0 when blocked).
        reset_time: Epoch milliseconds when the window resets.
    """

    retry_after_seconds: int = 0
    limit: int = 0
    remaining: int = 0
    reset_time: int = 0
