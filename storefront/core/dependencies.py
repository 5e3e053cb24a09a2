"""FastAPI dependencies exposing collaborators built by the app factory."""

from __future__ import annotations

from fastapi import Request

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.core.errors import PaymentGatewayAppError
from storefront.services.order_store import AbstractOrderStore
from storefront.services.webhook_service import PaymentWebhookService


def get_order_store(request: Request) -> AbstractOrderStore:
    return request.app.state.order_store


def get_payment_gateway(request: Request) -> AbstractPaymentGateway:
    """Return the configured payment gateway.

    Raises:
        PaymentGatewayAppError: When no access token was configured at startup.
    """
    gateway: AbstractPaymentGateway | None = request.app.state.payment_gateway
    if gateway is None:
        raise PaymentGatewayAppError(
            code="payment_gateway_not_configured",
            message="Payment provider client is not configured",
        )
    return gateway


def get_webhook_service(request: Request) -> PaymentWebhookService:
    state = request.app.state
    return PaymentWebhookService(
        verifier=state.webhook_verifier,
        gateway=state.payment_gateway,
        order_store=state.order_store,
    )
