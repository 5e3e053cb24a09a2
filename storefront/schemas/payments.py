"""Pydantic schemas for payment webhooks, checkout and order lookups."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_id(value: Any) -> Any:
    # The provider sends numeric ids in some notification versions
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class WebhookData(BaseModel):
    """``data`` block of a webhook delivery."""

    id: str | None = Field(default=None, description="Provider resource id (payment id for payment events).")

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_numeric_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class WebhookEvent(BaseModel):
    """Inbound MercadoPago webhook body."""

    type: str | None = Field(default=None, description="Event type: payment, plan, subscription, ...")
    action: str | None = Field(default=None, description="Event action, e.g. payment.updated.")
    data: WebhookData | None = None

    @property
    def resource_id(self) -> str | None:
        return self.data.id if self.data else None

    model_config = ConfigDict(extra="allow")


class PaymentNotification(BaseModel):
    """Payment state reported by the provider for a single payment."""

    payment_id: str = Field(..., description="Provider payment id.")
    status: str | None = Field(default=None, description="Provider status vocabulary (approved, rejected, ...).")
    status_detail: str | None = None
    external_reference: str | None = Field(
        default=None,
        description="Our order id, set on the checkout preference.",
    )
    amount: float | None = Field(default=None, description="Transaction amount.")
    method: str | None = Field(default=None, description="Payment method id (visa, account_money, ...).")
    payment_type: str | None = None

    @field_validator("payment_id", "external_reference", mode="before")
    @classmethod
    def coerce_numeric_ids(cls, value: Any) -> Any:
        return _coerce_id(value)


class PreferenceItem(BaseModel):
    id: str
    title: str
    quantity: int = Field(..., ge=1)
    unit_price: float
    currency_id: str


class PreferenceRequest(BaseModel):
    """Checkout preference parameters for one order."""

    order_id: str
    items: List[PreferenceItem]
    payer_email: str | None = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PreferenceResponse(BaseModel):
    id: str
    init_point: str | None = None
    sandbox_init_point: str | None = None


class CreatePaymentRequest(BaseModel):
    order_id: str = Field(..., alias="orderId", min_length=1, max_length=128)

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CreatePaymentOrderSummary(BaseModel):
    id: str
    total: float
    items: int


class CreatePaymentResponse(BaseModel):
    preference_id: str = Field(..., serialization_alias="preferenceId")
    init_point: str | None = Field(default=None, serialization_alias="initPoint")
    sandbox_init_point: str | None = Field(default=None, serialization_alias="sandboxInitPoint")
    order: CreatePaymentOrderSummary


class OrderStatusResponse(BaseModel):
    id: str
    payment_status: str = Field(..., serialization_alias="paymentStatus")
    status: str
    total: float
