"""Payment webhook processing.

Turns a verified MercadoPago delivery into an order status transition. The
provider delivers at least once, so the transition is a compare-and-set and
side effects (payment id, stock, notification) run only when the stored
payment status actually changes.
"""

from __future__ import annotations

import logging
from enum import Enum

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.core.errors import PaymentGatewayAppError
from storefront.schemas.payments import PaymentNotification, WebhookEvent
from storefront.services.order_store import AbstractOrderStore, StatusTransition
from storefront.services.payment_status import PaymentStatus, map_payment_status_to_order_status
from storefront.services.webhook_signature import WebhookSignatureVerifier

logger = logging.getLogger(__name__)

PAYMENT_EVENT = "payment"
SUBSCRIPTION_EVENTS = frozenset({"plan", "subscription", "subscription_preapproval", "subscription_authorized_payment"})
MALFORMED_RESPONSE_CODE = "payment_provider_invalid_response"


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"
    INVALID_SIGNATURE = "invalid_signature"
    PAYMENT_NOT_FOUND = "payment_not_found"
    MISSING_REFERENCE = "missing_reference"
    ORDER_NOT_FOUND = "order_not_found"
    MALFORMED_PAYMENT = "malformed_payment"


class PaymentWebhookService:
    """Verifies and applies payment notifications.

    Attributes:
        verifier: Signature verifier holding the webhook secret.
        gateway: Provider client used to fetch authoritative payment state.
        order_store: Collaborator owning orders.
    """

    def __init__(
        self,
        *,
        verifier: WebhookSignatureVerifier,
        gateway: AbstractPaymentGateway | None,
        order_store: AbstractOrderStore,
    ) -> None:
        self.verifier = verifier
        self.gateway = gateway
        self.order_store = order_store

    async def handle(
        self,
        event: WebhookEvent,
        *,
        signature_header: str,
        request_id: str,
    ) -> WebhookOutcome:
        """Process one webhook delivery.

        Args:
            event: Parsed webhook body.
            signature_header: Raw x-signature header.
            request_id: Raw x-request-id header.

        Returns:
            WebhookOutcome describing what happened.

        Raises:
            PaymentGatewayAppError: If the provider cannot be queried, so the
                delivery is answered with an error and retried by the provider.
        """
        event_type = (event.type or "").lower()

        if event_type != PAYMENT_EVENT:
            logger.info(
                "webhook.ignored",
                extra={
                    "event_type": event.type,
                    "action": event.action,
                    "reason": "subscription_event" if event_type in SUBSCRIPTION_EVENTS else "unknown_type",
                },
            )
            return WebhookOutcome.IGNORED

        payment_id = event.resource_id
        if not payment_id:
            logger.warning("webhook.ignored", extra={"event_type": event.type, "reason": "missing_data_id"})
            return WebhookOutcome.IGNORED

        if not self.verifier.validate(signature_header, request_id, payment_id):
            return WebhookOutcome.INVALID_SIGNATURE

        return await self.apply_payment(payment_id)

    async def apply_payment(self, payment_id: str) -> WebhookOutcome:
        """Fetch a verified payment and move its order to the mapped status."""
        if self.gateway is None:
            raise PaymentGatewayAppError(
                code="payment_gateway_not_configured",
                message="Payment provider client is not configured",
            )

        try:
            notification = await self.gateway.get_payment(payment_id)
        except PaymentGatewayAppError as exc:
            if exc.code != MALFORMED_RESPONSE_CODE:
                raise
            logger.error("webhook.malformed_payment", extra={"payment_id": payment_id})
            return WebhookOutcome.MALFORMED_PAYMENT

        if notification is None:
            logger.error("webhook.payment_not_found", extra={"payment_id": payment_id})
            return WebhookOutcome.PAYMENT_NOT_FOUND

        if not notification.external_reference:
            logger.error("webhook.missing_external_reference", extra={"payment_id": payment_id})
            return WebhookOutcome.MISSING_REFERENCE

        order = await self.order_store.find_by_external_reference(notification.external_reference)
        if order is None:
            logger.error(
                "webhook.order_not_found",
                extra={"payment_id": payment_id, "order_id": notification.external_reference},
            )
            return WebhookOutcome.ORDER_NOT_FOUND

        new_pair = map_payment_status_to_order_status(notification.status)
        transition = await self.order_store.transition_status(
            order.id,
            payment_status=new_pair.payment_status,
            order_status=new_pair.order_status,
            payment_id=notification.payment_id,
        )

        if transition is None:
            logger.info(
                "webhook.status_unchanged",
                extra={"order_id": order.id, "payment_status": new_pair.payment_status.value},
            )
            return WebhookOutcome.UNCHANGED

        await self._on_transition(transition, notification)
        return WebhookOutcome.PROCESSED

    async def _on_transition(self, transition: StatusTransition, notification: PaymentNotification) -> None:
        order = transition.order

        if (
            transition.current.payment_status is PaymentStatus.PAID
            and transition.previous.payment_status is not PaymentStatus.PAID
        ):
            await self.order_store.decrement_stock(order.items)

        logger.info(
            "order.status_changed",
            extra={
                "order_id": order.id,
                "user_id": order.user_id,
                "payment_id": notification.payment_id,
                "old_payment_status": transition.previous.payment_status.value,
                "new_payment_status": transition.current.payment_status.value,
                "old_order_status": transition.previous.order_status.value,
                "new_order_status": transition.current.order_status.value,
                "amount": notification.amount,
                "method": notification.method,
            },
        )
