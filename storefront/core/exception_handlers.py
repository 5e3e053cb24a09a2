"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 401, 404, 502)
- RateLimitAppError → 429 with Retry-After and a flat ``{"error": message}`` body
- RequestValidationError → 400 ``invalid_request`` instead of FastAPI's 422
- Unexpected Exception → generic 500 (safety net)
- All envelope responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.core.config import settings
from storefront.core.errors import (
    AppError,
    AuthenticationAppError,
    NotFoundAppError,
    PaymentGatewayAppError,
    RateLimitAppError,
    ValidationAppError,
)
from storefront.core.logging import get_request_id

logger = logging.getLogger(__name__)


_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (AuthenticationAppError, 401),
    (NotFoundAppError, 404),
    (PaymentGatewayAppError, 502),
)


def _status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 401 Unauthorized (no valid session)
    - NotFoundAppError → 404 Not Found
    - PaymentGatewayAppError → 502 Bad Gateway (provider fault)

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def rate_limit_error_handler(request: Request, exc: RateLimitAppError) -> JSONResponse:
    """Render an admission denial as a retryable 429.

    The body stays flat (``{"error": message}``) so API clients can show the
    message directly; the retry delay travels in the Retry-After header.
    """
    headers = {"Retry-After": str(exc.retry_after_seconds)}
    if settings.rate_limit.include_headers:
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = str(exc.remaining)
        headers["X-RateLimit-Reset"] = str(exc.reset_time // 1000)

    return JSONResponse(
        status_code=429,
        content={"error": exc.message},
        headers=headers,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies/params as 400 in the standard envelope."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return await app_error_handler(
        request,
        ValidationAppError(
            code="invalid_request",
            message="Invalid request data",
            details={"context": {"fields": fields}},
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Catches any exception not handled by specific handlers.
    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Must be called during app initialization, before route registration.
    Starlette resolves handlers by exception MRO, so the specific 429 handler
    wins over the generic AppError handler.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitAppError)(rate_limit_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
