"""Provider payment status vocabulary mapped onto internal order statuses."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class StatusPair(NamedTuple):
    payment_status: PaymentStatus
    order_status: OrderStatus


PENDING_PAIR = StatusPair(PaymentStatus.PENDING, OrderStatus.PENDING)

_PAID = StatusPair(PaymentStatus.PAID, OrderStatus.CONFIRMED)
_FAILED = StatusPair(PaymentStatus.FAILED, OrderStatus.CANCELLED)
_REFUNDED = StatusPair(PaymentStatus.REFUNDED, OrderStatus.REFUNDED)

PROVIDER_STATUS_MAP: dict[str, StatusPair] = {
    "approved": _PAID,
    "authorized": _PAID,
    "pending": PENDING_PAIR,
    "in_process": PENDING_PAIR,
    "in_mediation": PENDING_PAIR,
    "rejected": _FAILED,
    "cancelled": _FAILED,
    "refunded": _REFUNDED,
    "charged_back": _REFUNDED,
}


def map_payment_status_to_order_status(provider_status: str | None) -> StatusPair:
    """Map a MercadoPago payment status to ``(payment_status, order_status)``.

    Unknown, empty or non-string statuses map to the pending pair so an
    unexpected value can never break webhook processing.

    Examples:
        >>> map_payment_status_to_order_status("approved")
        StatusPair(payment_status=<PaymentStatus.PAID: 'PAID'>, order_status=<OrderStatus.CONFIRMED: 'CONFIRMED'>)
    """
    if not isinstance(provider_status, str):
        return PENDING_PAIR
    return PROVIDER_STATUS_MAP.get(provider_status.strip().lower(), PENDING_PAIR)
