from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.core.auth import get_current_user_id
from storefront.core.dependencies import get_order_store
from storefront.core.errors import NotFoundAppError
from storefront.core.rate_limit import OperationClass, enforce_rate_limit
from storefront.schemas.payments import OrderStatusResponse
from storefront.services.order_store import AbstractOrderStore

router = APIRouter(tags=["Orders"])


@router.get(
    "/orders/{order_id}",
    response_model=OrderStatusResponse,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_rate_limit(OperationClass.API))],
)
async def get_order_status(
    order_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    order_store: Annotated[AbstractOrderStore, Depends(get_order_store)],
) -> OrderStatusResponse:
    """Return the payment/order status pair of one of the caller's orders."""
    order = await order_store.get_order(order_id)
    # Other users' orders are indistinguishable from missing ones.
    if order is None or order.user_id != user_id:
        raise NotFoundAppError(code="order_not_found", message="Order not found")

    return OrderStatusResponse(
        id=order.id,
        payment_status=order.payment_status.value,
        status=order.status.value,
        total=order.total,
    )
