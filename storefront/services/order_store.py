"""Order store collaborator.

The storefront database owns orders; this service only reads the fields it
needs and moves the payment/order status pair. ``transition_status`` is a
compare-and-set keyed on the payment status so concurrent or repeated
webhook deliveries produce exactly one transition.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Iterable

from storefront.services.payment_status import OrderStatus, PaymentStatus, StatusPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    title: str
    quantity: int
    unit_price: float


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    items: tuple[OrderItem, ...] = ()
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: OrderStatus = OrderStatus.PENDING
    shipping: float = 0.0
    tax: float = 0.0
    payment_id: str | None = None
    preference_id: str | None = None

    @property
    def status_pair(self) -> StatusPair:
        return StatusPair(self.payment_status, self.status)

    @property
    def subtotal(self) -> float:
        return sum(item.unit_price * item.quantity for item in self.items)

    @property
    def total(self) -> float:
        return round(self.subtotal + self.shipping + self.tax, 2)


@dataclass(frozen=True)
class StatusTransition:
    """A status change that was actually applied."""

    order: Order
    previous: StatusPair
    current: StatusPair


class AbstractOrderStore(ABC):
    """Operations this service needs from the order database."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Order | None:
        raise NotImplementedError

    @abstractmethod
    async def find_by_external_reference(self, external_reference: str) -> Order | None:
        """Look up the order a provider payment refers to."""
        raise NotImplementedError

    @abstractmethod
    async def transition_status(
        self,
        order_id: str,
        *,
        payment_status: PaymentStatus,
        order_status: OrderStatus,
        payment_id: str | None = None,
    ) -> StatusTransition | None:
        """Atomically move an order to a new status pair.

        Returns:
            The applied transition, or None when the order already holds the
            requested payment status (or does not exist). Fulfilment steps
            past the mapped order status are left alone on repeat deliveries.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement_stock(self, items: Iterable[OrderItem]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def set_preference_id(self, order_id: str, preference_id: str) -> None:
        raise NotImplementedError


class InMemoryOrderStore(AbstractOrderStore):
    """Thread-safe in-process order store.

    Used when no database-backed store is injected, and in tests.
    """

    def __init__(
        self,
        orders: Iterable[Order] = (),
        stock: dict[str, int] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._orders: dict[str, Order] = {order.id: order for order in orders}
        self._stock: dict[str, int] = dict(stock or {})
        self.stock_decrements = 0

    def add_order(self, order: Order) -> None:
        with self._lock:
            self._orders[order.id] = order

    def stock_of(self, product_id: str) -> int:
        with self._lock:
            return self._stock.get(product_id, 0)

    async def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    async def find_by_external_reference(self, external_reference: str) -> Order | None:
        # Checkout preferences use the order id as external reference.
        return await self.get_order(external_reference)

    async def transition_status(
        self,
        order_id: str,
        *,
        payment_status: PaymentStatus,
        order_status: OrderStatus,
        payment_id: str | None = None,
    ) -> StatusTransition | None:
        new_pair = StatusPair(payment_status, order_status)
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.payment_status is payment_status:
                return None

            updated = replace(
                order,
                payment_status=payment_status,
                status=order_status,
                payment_id=payment_id or order.payment_id,
            )
            self._orders[order_id] = updated
            return StatusTransition(order=updated, previous=order.status_pair, current=new_pair)

    async def decrement_stock(self, items: Iterable[OrderItem]) -> None:
        with self._lock:
            for item in items:
                self._stock[item.product_id] = max(0, self._stock.get(item.product_id, 0) - item.quantity)
            self.stock_decrements += 1

    async def set_preference_id(self, order_id: str, preference_id: str) -> None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                logger.warning("order_store.preference_for_unknown_order", extra={"order_id": order_id})
                return
            self._orders[order_id] = replace(order, preference_id=preference_id)
