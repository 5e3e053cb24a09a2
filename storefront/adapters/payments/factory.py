"""Factory for the payment provider client."""

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.adapters.payments.mercadopago_client import MercadoPagoClient
from storefront.core.config import AppSettings, PaymentSettings, settings
from storefront.core.errors import ValidationAppError


def create_payment_gateway(
    payment_settings: PaymentSettings | None = None,
    app_settings: AppSettings | None = None,
) -> AbstractPaymentGateway:
    """Instantiate the MercadoPago client from configuration.

    Returns:
        AbstractPaymentGateway: Configured client instance.

    Raises:
        ValidationAppError: If no access token is configured.
    """
    payments = payment_settings or settings.payments
    app = app_settings or settings.app

    if not payments.access_token:
        raise ValidationAppError(
            code="payments_missing_access_token",
            message="MercadoPago requires PAYMENTS_ACCESS_TOKEN environment variable",
        )

    return MercadoPagoClient(
        payments.access_token,
        base_url=payments.api_base_url,
        public_base_url=app.public_base_url,
        timeout_seconds=payments.timeout_seconds,
        preference_ttl_minutes=payments.preference_ttl_minutes,
    )
