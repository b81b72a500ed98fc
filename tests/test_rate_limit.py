"""Tests for the fixed-window rate limiter."""

import pytest

from bucketdrop.shares.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(settings_store, clock):
    # 3 requests per 60 seconds
    return FixedWindowRateLimiter(settings_store.get, clock=clock)


def test_requests_within_limit_allowed(limiter):
    assert [limiter.allow("10.0.0.1") for _ in range(3)] == [True, True, True]


def test_request_over_limit_rejected(limiter):
    for _ in range(3):
        limiter.allow("10.0.0.1")

    assert limiter.allow("10.0.0.1") is False
    assert limiter.allow("10.0.0.1") is False


def test_window_reset_allows_again(limiter, clock):
    for _ in range(4):
        limiter.allow("10.0.0.1")

    clock.advance(30)
    assert limiter.allow("10.0.0.1") is False

    clock.advance(30)
    assert limiter.allow("10.0.0.1") is True
    assert limiter.allow("10.0.0.1") is True


def test_clients_are_independent(limiter):
    for _ in range(4):
        limiter.allow("10.0.0.1")

    assert limiter.allow("10.0.0.2") is True


def test_retry_after(limiter, clock):
    assert limiter.retry_after("10.0.0.1") == 0.0

    limiter.allow("10.0.0.1")
    clock.advance(15)

    assert limiter.retry_after("10.0.0.1") == pytest.approx(45)


def test_limits_follow_live_settings(limiter, settings_store, settings):
    for _ in range(3):
        limiter.allow("10.0.0.1")
    assert limiter.allow("10.0.0.1") is False

    settings_store.replace(settings.model_copy(update={"rate_limit_requests": 10}))

    assert limiter.allow("10.0.0.1") is True


def test_expired_entries_pruned(settings_store, clock, monkeypatch):
    monkeypatch.setattr("bucketdrop.shares.rate_limit.PRUNE_THRESHOLD", 2)
    limiter = FixedWindowRateLimiter(settings_store.get, clock=clock)

    limiter.allow("a")
    limiter.allow("b")
    clock.advance(61)
    limiter.allow("c")

    assert set(limiter._entries) == {"c"}
