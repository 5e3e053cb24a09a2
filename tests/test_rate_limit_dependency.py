"""Tests for the rate limiting dependency wired into the HTTP routes."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from storefront.adapters.payments.base import AbstractPaymentGateway
from storefront.adapters.rate_limit.base import RateLimitConfig
from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from storefront.adapters.rate_limit.limiter import RateLimiter
from storefront.core.app_factory import create_app
from storefront.core.rate_limit import OperationClass, build_rate_limit_presets, get_client_identifier

ALICE = {"Authorization": "Bearer token-alice"}
BOB = {"Authorization": "Bearer token-bob"}


def _request(headers: dict[str, str]) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        }
    )


class TestClientIdentifier:
    def test_first_forwarded_for_entry_wins(self) -> None:
        request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
        assert get_client_identifier(request) == "203.0.113.7"

    def test_real_ip_then_cloudflare(self) -> None:
        assert get_client_identifier(_request({"X-Real-IP": "10.0.0.2"})) == "10.0.0.2"
        assert get_client_identifier(_request({"CF-Connecting-IP": "10.0.0.3"})) == "10.0.0.3"

    def test_unknown_without_proxy_headers(self) -> None:
        assert get_client_identifier(_request({})) == "unknown"


def test_presets_follow_settings() -> None:
    presets = build_rate_limit_presets()

    assert set(presets) == set(OperationClass)
    assert presets[OperationClass.AUTH].window_ms == 900_000
    assert presets[OperationClass.AUTH].max_requests == 5
    assert presets[OperationClass.WEB].key_prefix == "web"


@pytest.fixture
def app(order_store):
    app = create_app(
        rate_limiter=RateLimiter(fallback=InMemoryFixedWindowRateLimiter()),
        order_store=order_store,
        payment_gateway=AsyncMock(spec=AbstractPaymentGateway),
    )
    app.state.rate_limit_presets = {
        **app.state.rate_limit_presets,
        OperationClass.API: RateLimitConfig(window_ms=60_000, max_requests=2, key_prefix="api"),
        OperationClass.PAYMENT: RateLimitConfig(window_ms=60_000, max_requests=1, key_prefix="payment"),
    }
    return app


def test_returns_429_with_retry_after_when_exhausted(app) -> None:
    with TestClient(app) as client:
        for _ in range(2):
            assert client.get("/api/orders/order-1", headers=ALICE).status_code == 200

        response = client.get("/api/orders/order-1", headers=ALICE)

    assert response.status_code == 429
    assert response.json() == {"error": "API rate limit exceeded, please try again later"}
    assert 0 < int(response.headers["Retry-After"]) <= 60
    assert response.headers["X-RateLimit-Limit"] == "2"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_ip_buckets_are_isolated(app) -> None:
    with TestClient(app) as client:
        for _ in range(3):
            client.get("/api/orders/order-1", headers={**ALICE, "X-Forwarded-For": "198.51.100.1"})

        response = client.get("/api/orders/order-1", headers={**ALICE, "X-Forwarded-For": "198.51.100.2"})

    assert response.status_code == 200


def test_payment_limit_is_keyed_per_user(app) -> None:
    body = {"orderId": "missing-order"}
    with TestClient(app) as client:
        assert client.post("/api/payments/create", json=body, headers=ALICE).status_code == 404
        assert client.post("/api/payments/create", json=body, headers=ALICE).status_code == 429
        assert client.post("/api/payments/create", json=body, headers=BOB).status_code == 404


@patch("storefront.core.rate_limit.settings")
def test_disabled_rate_limiting_admits_everything(mock_settings, app) -> None:
    mock_settings.rate_limit.enabled = False

    with TestClient(app) as client:
        statuses = {client.get("/api/orders/order-1", headers=ALICE).status_code for _ in range(5)}

    assert statuses == {200}
