"""Unit tests for in-memory rate limiter adapter."""

from unittest.mock import Mock

import pytest

from storefront.adapters.rate_limit.base import RateLimitConfig
from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter


def test_example_window_scenario() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)
    config = RateLimitConfig(window_ms=60_000, max_requests=3)

    results = [limiter.consume("ip:1.2.3.4", config) for _ in range(3)]
    assert [r.success for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]

    blocked = limiter.consume("ip:1.2.3.4", config)
    assert blocked.success is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 60

    clock.return_value = 1061.0
    fresh = limiter.consume("ip:1.2.3.4", config)
    assert fresh.success is True
    assert fresh.remaining == 2


def test_reset_time_is_window_after_first_request() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)
    config = RateLimitConfig(window_ms=10_000, max_requests=5)

    first = limiter.consume("k", config)
    clock.return_value = 1004.0
    second = limiter.consume("k", config)

    assert first.reset_time == 1_010_000
    assert second.reset_time == 1_010_000


def test_blocked_request_is_not_counted() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)
    config = RateLimitConfig(window_ms=10_000, max_requests=1)

    assert limiter.consume("k", config).success is True
    for _ in range(5):
        assert limiter.consume("k", config).success is False

    clock.return_value = 1010.0
    assert limiter.consume("k", config).success is True


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock)
    config = RateLimitConfig(window_ms=60_000, max_requests=1)

    assert limiter.consume("k1", config).success is True
    assert limiter.consume("k1", config).success is False

    assert limiter.consume("k2", config).success is True


def test_expired_entries_are_swept() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(cleanup_interval=3, clock=clock)
    config = RateLimitConfig(window_ms=1_000, max_requests=5)

    limiter.consume("a", config)
    limiter.consume("b", config)
    assert len(limiter) == 2

    clock.return_value = 1002.0
    limiter.consume("c", config)

    assert len(limiter) == 1


def test_capacity_evicts_soonest_reset_but_keeps_new_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(max_entries=2, clock=clock)
    short = RateLimitConfig(window_ms=1_000, max_requests=1)
    long = RateLimitConfig(window_ms=60_000, max_requests=1)

    limiter.consume("short", short)
    limiter.consume("long", long)
    limiter.consume("new", short)

    assert len(limiter) == 2
    assert limiter.consume("new", short).success is False
    # "short" was evicted, so it starts a fresh window
    assert limiter.consume("short", short).success is True


@pytest.mark.asyncio
async def test_async_check_delegates_to_consume() -> None:
    limiter = InMemoryFixedWindowRateLimiter(clock=Mock(return_value=1000.0))
    config = RateLimitConfig(window_ms=60_000, max_requests=1)

    assert (await limiter.check("k", config)).success is True
    assert (await limiter.check("k", config)).success is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_entries": 0},
        {"cleanup_interval": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryFixedWindowRateLimiter(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_ms": 0, "max_requests": 1},
        {"window_ms": 1000, "max_requests": 0},
    ],
)
def test_invalid_config(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateLimitConfig(**kwargs)


def test_invalid_consume_args() -> None:
    limiter = InMemoryFixedWindowRateLimiter()

    with pytest.raises(ValueError):
        limiter.consume("", RateLimitConfig(window_ms=1000, max_requests=1))
