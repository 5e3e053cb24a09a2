from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from storefront.core.app_factory import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as client:
        yield client


def test_preserves_incoming_request_id_header(client):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_health_reports_rate_limit_backend(client):
    resp = client.get("/health")

    assert resp.json() == {"status": "ok", "rate_limit_backend": "memory"}


def test_error_envelope_carries_request_id(client):
    resp = client.get("/api/orders/order-1", headers={"X-Request-ID": "req-abc"})

    assert resp.status_code == 401
    assert resp.json()["error"]["request_id"] == "req-abc"
