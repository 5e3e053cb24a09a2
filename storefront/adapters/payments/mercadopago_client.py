"""MercadoPago REST client adapter."""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.core.errors import PaymentGatewayAppError
from storefront.schemas.payments import PaymentNotification, PreferenceRequest, PreferenceResponse

logger = logging.getLogger(__name__)


def generate_idempotency_key(order_id: str) -> str:
    return f"{order_id}-{int(time.time() * 1000)}"


class MercadoPagoClient(AbstractPaymentGateway):
    """Client for the MercadoPago payments and checkout APIs.

    Uses httpx with a bounded timeout; every failure surfaces as
    PaymentGatewayAppError so callers handle a single error type.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = "https://api.mercadopago.com",
        public_base_url: str = "http://localhost:3000",
        timeout_seconds: float = 5.0,
        preference_ttl_minutes: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            access_token: MercadoPago access token.
            base_url: REST API base URL.
            public_base_url: Storefront URL for back URLs and notifications.
            timeout_seconds: Timeout for requests in seconds.
            preference_ttl_minutes: How long a checkout preference stays payable.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )
        self.public_base_url = public_base_url.rstrip("/")
        self.preference_ttl = timedelta(minutes=preference_ttl_minutes)

    @property
    def notification_url(self) -> str:
        return f"{self.public_base_url}/api/webhooks/mercadopago"

    async def get_payment(self, payment_id: str) -> PaymentNotification | None:
        """Fetch a payment by id.

        Returns:
            PaymentNotification, or None on HTTP 404.

        Raises:
            PaymentGatewayAppError: On transport errors, other non-2xx responses
                or a body that does not describe a payment.
        """
        data = await self._request("GET", f"/v1/payments/{payment_id}", not_found_ok=True)
        if data is None:
            return None

        try:
            return PaymentNotification(
                payment_id=data.get("id", payment_id),
                status=data.get("status"),
                status_detail=data.get("status_detail"),
                external_reference=data.get("external_reference") or None,
                amount=data.get("transaction_amount"),
                method=data.get("payment_method_id"),
                payment_type=data.get("payment_type_id"),
            )
        except ValidationError as exc:
            logger.error(
                "payments.malformed_payment",
                extra={"payment_id": payment_id, "fields": [".".join(map(str, err["loc"])) for err in exc.errors()]},
            )
            raise PaymentGatewayAppError(
                code="payment_provider_invalid_response",
                message="Payment provider returned a malformed payment",
                details={"payment_id": payment_id},
            ) from exc

    async def create_preference(self, request: PreferenceRequest) -> PreferenceResponse:
        """Create a checkout preference whose external reference is the order id."""
        now = datetime.now(timezone.utc)
        order_query = f"?order_id={request.order_id}"

        body: dict[str, Any] = {
            "items": [item.model_dump(mode="json") for item in request.items],
            "payment_methods": {
                "excluded_payment_methods": [],
                "excluded_payment_types": [],
                "installments": 12,
            },
            "back_urls": {
                "success": f"{self.public_base_url}/payment/success{order_query}",
                "failure": f"{self.public_base_url}/payment/failure{order_query}",
                "pending": f"{self.public_base_url}/payment/pending{order_query}",
            },
            "auto_return": "approved",
            "external_reference": request.order_id,
            "notification_url": self.notification_url,
            "metadata": {"order_id": request.order_id, **request.metadata},
            "expires": True,
            "expiration_date_from": now.isoformat(),
            "expiration_date_to": (now + self.preference_ttl).isoformat(),
        }
        if request.payer_email:
            body["payer"] = {"email": request.payer_email}

        data = await self._request(
            "POST",
            "/checkout/preferences",
            json=body,
            headers={"X-Idempotency-Key": generate_idempotency_key(request.order_id)},
        )
        if not data or not data.get("id"):
            raise PaymentGatewayAppError(
                code="payment_provider_invalid_response",
                message="Payment provider returned no preference id",
                details={"order_id": request.order_id},
            )

        logger.info(
            "payments.preference_created",
            extra={"order_id": request.order_id, "items_count": len(request.items)},
        )
        return PreferenceResponse(
            id=str(data["id"]),
            init_point=data.get("init_point"),
            sandbox_init_point=data.get("sandbox_init_point"),
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        not_found_ok: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "payments.provider_unreachable",
                extra={"path": path, "error_type": type(exc).__name__},
            )
            raise PaymentGatewayAppError(
                code="payment_provider_unreachable",
                message="Payment provider request failed",
            ) from exc

        if response.status_code == 404 and not_found_ok:
            return None

        if response.status_code >= 400:
            logger.error(
                "payments.provider_error",
                extra={"path": path, "status_code": response.status_code},
            )
            raise PaymentGatewayAppError(
                code="payment_provider_error",
                message="Payment provider returned an error",
                details={"http_status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise PaymentGatewayAppError(
                code="payment_provider_invalid_response",
                message="Payment provider returned invalid JSON",
            ) from exc

        if not isinstance(data, dict):
            logger.error(
                "payments.provider_invalid_body",
                extra={"path": path, "body_type": type(data).__name__},
            )
            raise PaymentGatewayAppError(
                code="payment_provider_invalid_response",
                message="Payment provider returned an unexpected body",
            )
        return data
