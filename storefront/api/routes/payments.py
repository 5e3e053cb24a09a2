from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.core.auth import get_current_user_id
from storefront.core.config import settings
from storefront.core.dependencies import get_order_store, get_payment_gateway
from storefront.core.errors import NotFoundAppError
from storefront.core.rate_limit import OperationClass, enforce_rate_limit
from storefront.schemas.payments import (
    CreatePaymentOrderSummary,
    CreatePaymentRequest,
    CreatePaymentResponse,
    PreferenceItem,
    PreferenceRequest,
)
from storefront.services.order_store import AbstractOrderStore, Order
from storefront.services.payment_status import PaymentStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


def build_preference_items(order: Order, currency_id: str) -> list[PreferenceItem]:
    """Checkout lines for an order: one per item plus shipping and tax when non-zero."""
    items = [
        PreferenceItem(
            id=item.product_id,
            title=item.title,
            quantity=item.quantity,
            unit_price=item.unit_price,
            currency_id=currency_id,
        )
        for item in order.items
    ]
    if order.shipping > 0:
        items.append(
            PreferenceItem(id="shipping", title="Shipping", quantity=1, unit_price=order.shipping, currency_id=currency_id)
        )
    if order.tax > 0:
        items.append(PreferenceItem(id="tax", title="Tax", quantity=1, unit_price=order.tax, currency_id=currency_id))
    return items


@router.post(
    "/payments/create",
    response_model=CreatePaymentResponse,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_rate_limit(OperationClass.PAYMENT, per_user=True))],
)
async def create_payment(
    body: CreatePaymentRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    order_store: Annotated[AbstractOrderStore, Depends(get_order_store)],
    gateway: Annotated[AbstractPaymentGateway, Depends(get_payment_gateway)],
) -> CreatePaymentResponse:
    """Create a MercadoPago checkout preference for a pending order.

    Raises:
        NotFoundAppError: 404 if the order does not exist, belongs to another
            user, or was already paid/processed.
        PaymentGatewayAppError: 502 when the provider call fails.
    """
    order = await order_store.get_order(body.order_id)
    if order is None or order.user_id != user_id or order.payment_status is not PaymentStatus.PENDING:
        raise NotFoundAppError(
            code="order_not_found",
            message="Order not found or already processed",
        )

    preference = await gateway.create_preference(
        PreferenceRequest(
            order_id=order.id,
            items=build_preference_items(order, settings.payments.currency_id),
            metadata={"user_id": user_id, "order_total": order.total},
        )
    )
    await order_store.set_preference_id(order.id, preference.id)

    logger.info(
        "payments.checkout_started",
        extra={"order_id": order.id, "total": order.total, "items_count": len(order.items)},
    )

    return CreatePaymentResponse(
        preference_id=preference.id,
        init_point=preference.init_point,
        sandbox_init_point=preference.sandbox_init_point,
        order=CreatePaymentOrderSummary(id=order.id, total=order.total, items=len(order.items)),
    )
