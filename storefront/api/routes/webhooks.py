from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from storefront.core.dependencies import get_webhook_service
from storefront.core.errors import PaymentGatewayAppError, ValidationAppError
from storefront.core.logging import log_security_event
from storefront.core.rate_limit import OperationClass, enforce_rate_limit
from storefront.schemas.payments import WebhookEvent
from storefront.services.webhook_service import PaymentWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


async def _read_event(request: Request) -> WebhookEvent:
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("application/json"):
        raise ValidationAppError(
            code="unsupported_content_type",
            message="Webhook body must be application/json",
        )

    try:
        payload: Any = await request.json()
    except ValueError as exc:
        raise ValidationAppError(code="invalid_json", message="Webhook body is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise ValidationAppError(code="invalid_payload", message="Webhook body must be a JSON object")

    try:
        return WebhookEvent.model_validate(payload)
    except ValidationError as exc:
        raise ValidationAppError(code="invalid_payload", message="Webhook body has an invalid shape") from exc


@router.post(
    "/webhooks/mercadopago",
    dependencies=[Depends(enforce_rate_limit(OperationClass.WEB))],
)
async def receive_mercadopago_webhook(
    request: Request,
    service: Annotated[PaymentWebhookService, Depends(get_webhook_service)],
    x_signature: Annotated[str | None, Header()] = None,
    x_request_id: Annotated[str | None, Header()] = None,
):
    """Receive a MercadoPago notification.

    Every verified or rejected delivery is acknowledged with 200 so the
    provider stops retrying; only provider lookup failures answer 500, which
    asks the provider to deliver again.

    Raises:
        ValidationAppError: 400 for wrong content type, malformed body or
            missing x-signature / x-request-id headers.
    """
    if not x_signature or not x_request_id:
        log_security_event(
            "webhook.signature_rejected",
            reason="missing_headers",
            has_signature=bool(x_signature),
            has_request_id=bool(x_request_id),
        )
        raise ValidationAppError(
            code="missing_webhook_headers",
            message="Missing required headers",
        )

    event = await _read_event(request)

    try:
        outcome = await service.handle(event, signature_header=x_signature, request_id=x_request_id)
    except PaymentGatewayAppError as exc:
        logger.error(
            "webhook.processing_failed",
            extra={"error_code": exc.code, "event_type": event.type},
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    logger.info("webhook.handled", extra={"event_type": event.type, "outcome": outcome.value})
    return {"success": True}


@router.get("/webhooks/mercadopago")
async def webhook_status() -> dict:
    """Liveness probe used when registering the notification URL."""
    return {
        "status": "Webhook endpoint active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
