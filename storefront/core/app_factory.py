from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
builds the long-lived collaborators once. They live on ``app.state`` so tests
can inject fakes instead of patching module globals.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.adapters.payments.factory import create_payment_gateway
from storefront.adapters.rate_limit.factory import create_rate_limiter
from storefront.adapters.rate_limit.limiter import RateLimiter
from storefront.api.routes import health_router, orders_router, payments_router, webhooks_router
from storefront.core.auth import AbstractIdentityProvider, StaticTokenIdentityProvider
from storefront.core.config import settings
from storefront.core.exception_handlers import setup_exception_handlers
from storefront.core.logging import configure_logging
from storefront.core.middleware import request_id_middleware
from storefront.core.openapi import apply_openapi_customizations
from storefront.core.rate_limit import build_rate_limit_presets
from storefront.services.order_store import AbstractOrderStore, InMemoryOrderStore
from storefront.services.webhook_signature import WebhookSignatureVerifier

logger = logging.getLogger(__name__)


def _default_payment_gateway() -> AbstractPaymentGateway | None:
    if not settings.payments.access_token:
        logger.warning("payments.gateway_disabled", extra={"reason": "missing_access_token"})
        return None
    return create_payment_gateway()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    limiter: RateLimiter = app.state.rate_limiter
    await limiter.start()
    logger.info("app.started", extra={"rate_limit_backend": limiter.backend_name})
    try:
        yield
    finally:
        await limiter.close()
        gateway: AbstractPaymentGateway | None = app.state.payment_gateway
        if gateway is not None:
            await gateway.close()
        logger.info("app.stopped")


def create_app(
    *,
    rate_limiter: RateLimiter | None = None,
    order_store: AbstractOrderStore | None = None,
    payment_gateway: AbstractPaymentGateway | None = None,
    identity_provider: AbstractIdentityProvider | None = None,
    webhook_verifier: WebhookSignatureVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Any collaborator left as None is built from settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Storefront Payments API",
        description=(
            "Payment and admission-control layer of the storefront: MercadoPago "
            "checkout preferences, signed payment webhooks that drive order "
            "status, and per-operation rate limiting with a shared Redis "
            "backend and in-process fallback."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    app.state.rate_limiter = rate_limiter or create_rate_limiter()
    app.state.rate_limit_presets = build_rate_limit_presets()
    app.state.order_store = order_store or InMemoryOrderStore()
    app.state.payment_gateway = payment_gateway or _default_payment_gateway()
    app.state.identity_provider = identity_provider or StaticTokenIdentityProvider.from_string(
        settings.app.session_tokens
    )
    app.state.webhook_verifier = webhook_verifier or WebhookSignatureVerifier(
        settings.payments.webhook_secret,
        max_age_seconds=settings.payments.webhook_max_age_seconds,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(webhooks_router, prefix="/api")
    app.include_router(payments_router, prefix="/api")
    app.include_router(orders_router, prefix="/api")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
