"""Per-client throttling for the unauthenticated auth endpoints."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Protocol, cast

import redis
from fastapi import Request

from vattenmiljo_crm.config import Settings
from vattenmiljo_crm.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class Throttle(Protocol):
    def hit(self, key: str) -> bool:
        """Record one attempt for key; return False once it is over budget."""
        ...


class LocalThrottle:
    """Sliding-log throttle kept in process memory."""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._attempts: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            attempts = self._attempts.setdefault(key, deque())
            while attempts and now - attempts[0] >= self._window:
                attempts.popleft()
            if len(attempts) >= self._limit:
                return False
            attempts.append(now)
            return True


class RedisThrottle:
    """Fixed-window counter shared by every instance through Redis."""

    def __init__(self, client: redis.Redis, limit: int, window_seconds: int) -> None:
        self._client = client
        self._limit = limit
        self._window = window_seconds

    def hit(self, key: str) -> bool:
        bucket = f"crm:throttle:{key}:{int(time.time() // self._window)}"
        with self._client.pipeline() as pipe:
            pipe.incr(bucket)
            pipe.expire(bucket, self._window)
            count = pipe.execute()[0]
        return int(count) <= self._limit


def build_throttle(settings: Settings) -> Throttle:
    """Use Redis when REDIS_URL is configured, otherwise process memory."""
    if settings.redis_url:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisThrottle(client, settings.auth_rate_limit, settings.auth_rate_window_seconds)
    return LocalThrottle(settings.auth_rate_limit, settings.auth_rate_window_seconds)


def client_address(request: Request) -> str:
    """Return the caller's address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",", maxsplit=1)[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def throttle_request(request: Request) -> None:
    """Reject the request with 429 when its client is over budget for this path."""
    throttle = cast(Throttle, request.app.state.throttle)
    address = client_address(request)
    if not throttle.hit(f"{request.url.path}:{address}"):
        logger.warning("Throttled %s on %s", address, request.url.path)
        raise RateLimitedError("Too many requests")
