import uuid

import pytest
import redis
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app import rate_limiter
from app.errors import ClinicError, clinic_error_handler


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def ttl(self, key):
        raise redis.ConnectionError("down")

    def set(self, key, value, ex=None):
        raise redis.ConnectionError("down")


def unique_key():
    return f"test:{uuid.uuid4().hex}"


def test_requests_over_the_limit_are_refused():
    key = unique_key()
    results = [rate_limiter.check_rate_limit(key, 3, 60) for _ in range(4)]
    assert [allowed for allowed, _, _ in results] == [True, True, True, False]
    assert results[-1][1] == 3
    assert 0 < results[-1][2] <= 60


def test_keys_are_counted_separately():
    first, second = unique_key(), unique_key()
    rate_limiter.check_rate_limit(first, 1, 60)
    assert rate_limiter.check_rate_limit(second, 1, 60)[0] is True


def test_window_resets(monkeypatch):
    key = unique_key()
    now = [1_000_000]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: now[0])

    assert rate_limiter.check_rate_limit(key, 1, 60)[0] is True
    assert rate_limiter.check_rate_limit(key, 1, 60)[0] is False
    now[0] += 61
    assert rate_limiter.check_rate_limit(key, 1, 60)[0] is True


def test_redis_failures_fall_back_to_memory():
    key = unique_key()
    allowed, count, _ = rate_limiter.check_rate_limit(key, 5, 60, client=BrokenRedis())
    assert allowed is True
    assert count == 1


@pytest.fixture()
def limited_client(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    app = FastAPI()
    app.add_exception_handler(ClinicError, clinic_error_handler)
    limiter = rate_limiter.create_rate_limiter(2, 60, unique_key())

    @app.get("/ping", dependencies=[Depends(limiter)])
    def ping():
        return {"pong": True}

    return TestClient(app)


def test_dependency_answers_429_with_retry_after(limited_client):
    assert limited_client.get("/ping").status_code == 200
    assert limited_client.get("/ping").status_code == 200

    refused = limited_client.get("/ping")
    assert refused.status_code == 429
    assert refused.json()["error"] == "RateLimited"
    assert int(refused.headers["retry-after"]) > 0


def test_forwarded_for_header_picks_the_client(limited_client):
    for _ in range(2):
        limited_client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"})
    assert limited_client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2, 10.0.0.1"}).status_code == 200
    assert limited_client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
