"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment so settings never pick up a developer's .env file
or a real Redis / MercadoPago account.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_SESSION_TOKENS", "token-alice:alice,token-bob:bob")
os.environ.setdefault("PAYMENTS_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("RATE_LIMIT_REDIS_URL", None)
os.environ.pop("PAYMENTS_ACCESS_TOKEN", None)

import time  # noqa: E402

import pytest  # noqa: E402

from storefront.services.order_store import InMemoryOrderStore, Order, OrderItem  # noqa: E402
from storefront.services.webhook_signature import build_manifest, compute_signature  # noqa: E402

WEBHOOK_SECRET = os.environ["PAYMENTS_WEBHOOK_SECRET"]


def sign_webhook(
    resource_id: str,
    request_id: str,
    *,
    ts: int | None = None,
    secret: str = WEBHOOK_SECRET,
) -> str:
    """Build a valid x-signature header for a delivery."""
    ts = int(time.time()) if ts is None else ts
    signature = compute_signature(secret, build_manifest(resource_id, request_id, str(ts)))
    return f"ts={ts},v1={signature}"


@pytest.fixture
def pending_order() -> Order:
    return Order(
        id="order-1",
        user_id="alice",
        items=(
            OrderItem(product_id="prod-1", title="Mate gourd", quantity=2, unit_price=1500.0),
            OrderItem(product_id="prod-2", title="Yerba 1kg", quantity=1, unit_price=3200.0),
        ),
        shipping=800.0,
        tax=1024.0,
    )


@pytest.fixture
def order_store(pending_order: Order) -> InMemoryOrderStore:
    return InMemoryOrderStore([pending_order], stock={"prod-1": 10, "prod-2": 5})
