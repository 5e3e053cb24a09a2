"""Tests for provider status → order status mapping."""

import pytest

from storefront.services.payment_status import (
    PENDING_PAIR,
    OrderStatus,
    PaymentStatus,
    StatusPair,
    map_payment_status_to_order_status,
)


@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("approved", StatusPair(PaymentStatus.PAID, OrderStatus.CONFIRMED)),
        ("authorized", StatusPair(PaymentStatus.PAID, OrderStatus.CONFIRMED)),
        ("pending", PENDING_PAIR),
        ("in_process", PENDING_PAIR),
        ("in_mediation", PENDING_PAIR),
        ("rejected", StatusPair(PaymentStatus.FAILED, OrderStatus.CANCELLED)),
        ("cancelled", StatusPair(PaymentStatus.FAILED, OrderStatus.CANCELLED)),
        ("refunded", StatusPair(PaymentStatus.REFUNDED, OrderStatus.REFUNDED)),
        ("charged_back", StatusPair(PaymentStatus.REFUNDED, OrderStatus.REFUNDED)),
    ],
)
def test_known_statuses(provider_status: str, expected: StatusPair) -> None:
    assert map_payment_status_to_order_status(provider_status) == expected


def test_matching_ignores_case_and_whitespace() -> None:
    assert map_payment_status_to_order_status("  APPROVED ").payment_status is PaymentStatus.PAID


@pytest.mark.parametrize("provider_status", ["", "something_new", None, 42, ["approved"]])
def test_unknown_values_map_to_pending(provider_status) -> None:
    assert map_payment_status_to_order_status(provider_status) == PENDING_PAIR
