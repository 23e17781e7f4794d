from __future__ import annotations

import pytest
from starlette.requests import Request

from registration_intake.api.ratelimit import SlidingWindowRateLimiter, client_key


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_allows_up_to_limit_then_blocks(clock):
    limiter = SlidingWindowRateLimiter(3, 60, clock=clock)
    assert all(limiter.check("1.2.3.4").allowed for _ in range(3))

    decision = limiter.check("1.2.3.4")
    assert not decision.allowed
    assert decision.retry_after == 60


def test_window_slides(clock):
    limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
    limiter.check("a")
    clock.advance(30)
    limiter.check("a")

    clock.advance(10)
    blocked = limiter.check("a")
    assert not blocked.allowed
    assert blocked.retry_after == 20

    clock.advance(20)
    assert limiter.check("a").allowed


def test_blocked_attempts_do_not_extend_the_window(clock):
    limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
    limiter.check("a")
    for _ in range(5):
        clock.advance(10)
        limiter.check("a")
    clock.advance(10)
    assert limiter.check("a").allowed


def test_keys_are_independent(clock):
    limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
    assert limiter.check("a").allowed
    assert limiter.check("b").allowed
    assert not limiter.check("a").allowed


def test_least_recently_seen_key_is_evicted(clock):
    limiter = SlidingWindowRateLimiter(1, 60, max_keys=2, clock=clock)
    limiter.check("a")
    limiter.check("b")
    limiter.check("a")  # touch a; b is now the oldest
    limiter.check("c")

    assert len(limiter) == 2
    assert limiter.check("b").allowed
    assert not limiter.check("c").allowed


def test_retry_after_is_at_least_one_second(clock):
    limiter = SlidingWindowRateLimiter(1, 1, clock=clock)
    limiter.check("a")
    clock.advance(0.999)
    assert limiter.check("a").retry_after == 1


def _request(headers: list[tuple[bytes, bytes]], client=("203.0.113.9", 5555)) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": client})


@pytest.mark.parametrize(
    "headers, client, expected",
    [
        ([(b"x-forwarded-for", b"198.51.100.7, 10.0.0.1")], ("10.0.0.1", 1), "198.51.100.7"),
        ([], ("203.0.113.9", 5555), "203.0.113.9"),
        ([], None, "unknown"),
    ],
)
def test_client_key(headers, client, expected):
    assert client_key(_request(headers, client)) == expected
