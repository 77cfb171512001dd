"""Tests for the Redis-backed pybreaker storage."""
from datetime import datetime, timezone

import pybreaker
import pytest

from app.services.circuit_breaker import RedisCircuitBreakerStorage


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = str(value)

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    def expire(self, key, seconds):
        return True

    def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def storage():
    s = RedisCircuitBreakerStorage("test_rpc")
    s.client = FakeRedis()
    return s


def test_defaults_to_closed(storage):
    assert storage.state == pybreaker.STATE_CLOSED
    assert storage.counter == 0
    assert storage.success_counter == 0
    assert storage.opened_at is None


def test_counters_round_trip(storage):
    storage.increment_counter()
    storage.increment_counter()
    storage.increment_success_counter()
    assert storage.counter == 2
    assert storage.success_counter == 1

    storage.reset_counter()
    storage.reset_success_counter()
    assert storage.counter == 0
    assert storage.success_counter == 0


def test_state_and_opened_at(storage):
    opened = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    storage.state = pybreaker.STATE_OPEN
    storage.opened_at = opened

    assert storage.state == pybreaker.STATE_OPEN
    assert storage.opened_at == opened


def test_breaker_opens_on_shared_storage(storage):
    breaker = pybreaker.CircuitBreaker(fail_max=2, reset_timeout=60, state_storage=storage)

    def failing():
        raise RuntimeError("rpc down")

    for _ in range(2):
        with pytest.raises((RuntimeError, pybreaker.CircuitBreakerError)):
            breaker.call(failing)

    assert storage.state == pybreaker.STATE_OPEN
    with pytest.raises(pybreaker.CircuitBreakerError):
        breaker.call(lambda: "ok")
