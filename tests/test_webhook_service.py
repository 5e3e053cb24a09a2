"""Tests for payment webhook processing and its idempotency."""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.core.errors import PaymentGatewayAppError
from storefront.schemas.payments import PaymentNotification, WebhookEvent
from storefront.services.payment_status import OrderStatus, PaymentStatus
from storefront.services.webhook_service import PaymentWebhookService, WebhookOutcome
from storefront.services.webhook_signature import WebhookSignatureVerifier

from conftest import WEBHOOK_SECRET, sign_webhook


def _event(payment_id="pay-1", event_type="payment") -> WebhookEvent:
    return WebhookEvent.model_validate({"type": event_type, "action": "payment.updated", "data": {"id": payment_id}})


def _gateway(status: str = "approved", external_reference: str | None = "order-1") -> AsyncMock:
    gateway = AsyncMock(spec=AbstractPaymentGateway)
    gateway.get_payment.return_value = PaymentNotification(
        payment_id="pay-1",
        status=status,
        external_reference=external_reference,
        amount=8024.0,
        method="visa",
    )
    return gateway


def _service(order_store, gateway, verifier=None) -> PaymentWebhookService:
    return PaymentWebhookService(
        verifier=verifier or WebhookSignatureVerifier(WEBHOOK_SECRET),
        gateway=gateway,
        order_store=order_store,
    )


async def _deliver(service: PaymentWebhookService, event: WebhookEvent) -> WebhookOutcome:
    payment_id = event.resource_id or ""
    return await service.handle(
        event,
        signature_header=sign_webhook(payment_id, "req-1"),
        request_id="req-1",
    )


@pytest.mark.asyncio
async def test_approved_payment_confirms_order_and_decrements_stock(order_store) -> None:
    service = _service(order_store, _gateway("approved"))

    outcome = await _deliver(service, _event())

    order = await order_store.get_order("order-1")
    assert outcome is WebhookOutcome.PROCESSED
    assert order.payment_status is PaymentStatus.PAID
    assert order.status is OrderStatus.CONFIRMED
    assert order.payment_id == "pay-1"
    assert order_store.stock_of("prod-1") == 8
    assert order_store.stock_of("prod-2") == 4


@pytest.mark.asyncio
async def test_repeated_delivery_is_idempotent(order_store) -> None:
    service = _service(order_store, _gateway("approved"))

    first = await _deliver(service, _event())
    second = await _deliver(service, _event())

    assert (first, second) == (WebhookOutcome.PROCESSED, WebhookOutcome.UNCHANGED)
    assert order_store.stock_decrements == 1
    assert order_store.stock_of("prod-1") == 8


@pytest.mark.asyncio
async def test_repeated_delivery_keeps_later_fulfilment_status(order_store) -> None:
    service = _service(order_store, _gateway("approved"))
    assert await _deliver(service, _event()) is WebhookOutcome.PROCESSED

    order = await order_store.get_order("order-1")
    order_store.add_order(replace(order, status=OrderStatus.SHIPPED))

    outcome = await _deliver(service, _event())

    order = await order_store.get_order("order-1")
    assert outcome is WebhookOutcome.UNCHANGED
    assert order.status is OrderStatus.SHIPPED
    assert order.payment_status is PaymentStatus.PAID
    assert order_store.stock_decrements == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_deliveries_decrement_once(order_store) -> None:
    service = _service(order_store, _gateway("approved"))

    outcomes = await asyncio.gather(*(_deliver(service, _event()) for _ in range(5)))

    assert outcomes.count(WebhookOutcome.PROCESSED) == 1
    assert order_store.stock_decrements == 1


@pytest.mark.asyncio
async def test_rejected_payment_cancels_without_stock_change(order_store) -> None:
    service = _service(order_store, _gateway("rejected"))

    assert await _deliver(service, _event()) is WebhookOutcome.PROCESSED

    order = await order_store.get_order("order-1")
    assert order.status_pair == (PaymentStatus.FAILED, OrderStatus.CANCELLED)
    assert order_store.stock_decrements == 0


@pytest.mark.asyncio
async def test_pending_status_on_pending_order_is_unchanged(order_store) -> None:
    service = _service(order_store, _gateway("in_process"))

    assert await _deliver(service, _event()) is WebhookOutcome.UNCHANGED


@pytest.mark.asyncio
async def test_invalid_signature_never_touches_gateway(order_store) -> None:
    gateway = _gateway()
    service = _service(order_store, gateway)

    outcome = await service.handle(_event(), signature_header="ts=1,v1=deadbeef", request_id="req-1")

    assert outcome is WebhookOutcome.INVALID_SIGNATURE
    gateway.get_payment.assert_not_awaited()
    assert (await order_store.get_order("order-1")).payment_status is PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["plan", "subscription", "merchant_order", None])
async def test_non_payment_events_are_ignored(order_store, event_type) -> None:
    gateway = _gateway()
    service = _service(order_store, gateway)

    assert await _deliver(service, _event(event_type=event_type)) is WebhookOutcome.IGNORED
    gateway.get_payment.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_data_id_is_ignored(order_store) -> None:
    service = _service(order_store, _gateway())
    event = WebhookEvent.model_validate({"type": "payment", "data": None})

    assert await _deliver(service, event) is WebhookOutcome.IGNORED


@pytest.mark.asyncio
async def test_unknown_payment_is_abandoned(order_store) -> None:
    gateway = _gateway()
    gateway.get_payment.return_value = None

    assert await _deliver(_service(order_store, gateway), _event()) is WebhookOutcome.PAYMENT_NOT_FOUND


@pytest.mark.asyncio
async def test_payment_without_reference_is_abandoned(order_store) -> None:
    service = _service(order_store, _gateway(external_reference=None))

    assert await _deliver(service, _event()) is WebhookOutcome.MISSING_REFERENCE


@pytest.mark.asyncio
async def test_unknown_order_is_abandoned(order_store) -> None:
    service = _service(order_store, _gateway(external_reference="order-404"))

    assert await _deliver(service, _event()) is WebhookOutcome.ORDER_NOT_FOUND
    assert order_store.stock_decrements == 0


@pytest.mark.asyncio
async def test_gateway_errors_propagate(order_store) -> None:
    gateway = _gateway()
    gateway.get_payment.side_effect = PaymentGatewayAppError(code="payment_provider_unreachable", message="down")

    with pytest.raises(PaymentGatewayAppError):
        await _deliver(_service(order_store, gateway), _event())


@pytest.mark.asyncio
async def test_malformed_payment_is_abandoned(order_store) -> None:
    gateway = _gateway()
    gateway.get_payment.side_effect = PaymentGatewayAppError(
        code="payment_provider_invalid_response",
        message="Payment provider returned a malformed payment",
    )

    assert await _deliver(_service(order_store, gateway), _event()) is WebhookOutcome.MALFORMED_PAYMENT

    order = await order_store.get_order("order-1")
    assert order.status_pair == (PaymentStatus.PENDING, OrderStatus.PENDING)
    assert order_store.stock_decrements == 0


@pytest.mark.asyncio
async def test_missing_gateway_raises(order_store) -> None:
    with pytest.raises(PaymentGatewayAppError) as exc_info:
        await _deliver(_service(order_store, None), _event())

    assert exc_info.value.code == "payment_gateway_not_configured"


@pytest.mark.asyncio
async def test_status_change_is_logged(order_store) -> None:
    service = _service(order_store, _gateway("approved"))
    with patch("storefront.services.webhook_service.logger") as logger:
        await _deliver(service, _event())

    events = [c.args[0] for c in logger.info.call_args_list]
    assert "order.status_changed" in events
