"""Payment provider adapter layer."""

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.adapters.payments.factory import create_payment_gateway
from storefront.adapters.payments.mercadopago_client import MercadoPagoClient

__all__ = [
    "AbstractPaymentGateway",
    "MercadoPagoClient",
    "create_payment_gateway",
]
