from __future__ import annotations

from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from conftest import FakeIdentityProvider, make_settings
from vattenmiljo_crm.auth.throttle import (
    LocalThrottle,
    RedisThrottle,
    build_throttle,
    client_address,
)
from vattenmiljo_crm.main import create_app


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakePipeline:
    def __init__(self, store: dict[str, int]) -> None:
        self._store = store
        self._ops: list[tuple[str, str]] = []
        self.expiries: list[int] = []

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *_exc: Any) -> None:
        return None

    def incr(self, key: str) -> None:
        self._ops.append(("incr", key))

    def expire(self, key: str, seconds: int) -> None:
        self.expiries.append(seconds)

    def execute(self) -> list[int]:
        results = []
        for _op, key in self._ops:
            self._store[key] = self._store.get(key, 0) + 1
            results.append(self._store[key])
        self._ops.clear()
        return results + [True]


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, int] = {}

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self.store)


def test_local_throttle_blocks_over_budget() -> None:
    clock = FakeClock()
    throttle = LocalThrottle(limit=2, window_seconds=60, clock=clock)

    assert throttle.hit("a")
    assert throttle.hit("a")
    assert not throttle.hit("a")
    assert throttle.hit("b")


def test_local_throttle_window_slides() -> None:
    clock = FakeClock()
    throttle = LocalThrottle(limit=1, window_seconds=60, clock=clock)

    assert throttle.hit("a")
    clock.now += 59
    assert not throttle.hit("a")
    clock.now += 1
    assert throttle.hit("a")


def test_redis_throttle_counts_per_window() -> None:
    fake = FakeRedis()
    throttle = RedisThrottle(fake, limit=2, window_seconds=60)  # type: ignore[arg-type]

    results = [throttle.hit("/api/auth/setup:1.2.3.4") for _ in range(3)]

    assert results == [True, True, False]
    assert all(key.startswith("crm:throttle:/api/auth/setup:1.2.3.4:") for key in fake.store)


def test_build_throttle_prefers_redis() -> None:
    assert isinstance(build_throttle(make_settings()), LocalThrottle)
    throttle = build_throttle(make_settings(redis_url="redis://localhost:6379/0"))
    assert isinstance(throttle, RedisThrottle)


@pytest.mark.parametrize(
    ("headers", "expected"),
    [
        ({"X-Forwarded-For": "10.0.0.1, 10.0.0.2"}, "10.0.0.1"),
        ({}, "testclient"),
    ],
)
def test_client_address(headers: dict[str, str], expected: str) -> None:
    app = FastAPI()

    @app.get("/whoami")
    def whoami(request: Request) -> dict[str, str]:
        return {"address": client_address(request)}

    response = TestClient(app).get("/whoami", headers=headers)

    assert response.json()["address"] == expected


def test_session_exchange_is_throttled_per_client(provider: FakeIdentityProvider) -> None:
    app = create_app(make_settings(auth_rate_limit=1), identity_provider=provider)  # type: ignore[arg-type]
    client = TestClient(app)

    first = client.post("/api/auth/session", json={"idToken": "x"})
    blocked = client.post("/api/auth/session", json={"idToken": "x"})
    other = client.post(
        "/api/auth/session", json={"idToken": "x"}, headers={"X-Forwarded-For": "10.9.9.9"}
    )

    assert first.status_code == 401
    assert blocked.status_code == 429
    assert blocked.json() == {"error": "Too many requests", "code": "RATE_LIMITED"}
    assert other.status_code == 401
