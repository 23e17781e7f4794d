from __future__ import annotations

import logging
import math
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable

from starlette.requests import Request

from registration_intake.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

GENERAL_MESSAGE = "Too many requests from this IP, please try again later."
REGISTRATION_MESSAGE = "Too many registration attempts. Please try again later."


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class SlidingWindowRateLimiter:
    """
    Per-key sliding window over the last ``window_seconds``.

    At most ``max_keys`` keys are tracked; the least recently seen key is
    evicted first. State is per process and resets on restart.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        *,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._hits: OrderedDict[str, deque[float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._hits)

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        hits = self._hits.get(key)
        if hits is None:
            hits = deque()
            self._hits[key] = hits
            while len(self._hits) > self.max_keys:
                self._hits.popitem(last=False)
        else:
            self._hits.move_to_end(key)

        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, math.ceil(hits[0] + self.window_seconds - now))
            return RateDecision(allowed=False, retry_after=retry_after)

        hits.append(now)
        return RateDecision(allowed=True)

    def reset(self) -> None:
        self._hits.clear()


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limiter(state_attr: str, *, message: str = GENERAL_MESSAGE, key_fn: Callable = client_key):
    """
    FastAPI dependency backed by the limiter stored at ``app.state.<state_attr>``.

    A missing limiter (rate limiting disabled) lets every request through.
    """

    async def dep(request: Request) -> None:
        limiter: SlidingWindowRateLimiter | None = getattr(request.app.state, state_attr, None)
        if limiter is None:
            return
        key = str(key_fn(request))
        decision = limiter.check(key)
        if not decision.allowed:
            logger.warning("Rate limit hit on %s (retry in %ss)", request.url.path, decision.retry_after)
            raise RateLimitedError(message, retry_after=decision.retry_after)

    return dep


api_rate_limit = rate_limiter("api_rate_limiter")
registration_rate_limit = rate_limiter("registration_rate_limiter", message=REGISTRATION_MESSAGE)


__all__ = [
    "RateDecision",
    "SlidingWindowRateLimiter",
    "api_rate_limit",
    "client_key",
    "rate_limiter",
    "registration_rate_limit",
]
