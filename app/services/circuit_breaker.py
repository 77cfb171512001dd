"""
Circuit breakers around outbound dependencies (the Solana RPC node).

State lives in Redis so every API worker trips and recovers together; a node
that is down for one worker is down for all of them.
"""
import logging
from datetime import datetime

import redis
import pybreaker

from app.core.config import settings
from app.utils.metrics import circuit_breaker_state


logger = logging.getLogger("circuit_breaker")


class RedisCircuitBreakerStorage(pybreaker.CircuitBreakerStorage):
    """pybreaker storage keyed as cb:<name>:<field>."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._name = name
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)

    def _key(self, field: str) -> str:
        return f"cb:{self._name}:{field}"

    def _read_int(self, field: str) -> int:
        raw = self.client.get(self._key(field))
        return int(raw) if raw else 0

    def _bump(self, field: str) -> None:
        key = self._key(field)
        self.client.incr(key)
        self.client.expire(key, settings.cb_open_seconds)

    @property
    def state(self) -> str:
        return self.client.get(self._key("state")) or pybreaker.STATE_CLOSED

    @state.setter
    def state(self, value: str) -> None:
        # Outlives the open window so half-open is reached before the key expires
        self.client.set(self._key("state"), value, ex=settings.cb_open_seconds * 2)
        circuit_breaker_state.labels(name=self._name).set(1 if value == pybreaker.STATE_OPEN else 0)

    @property
    def counter(self) -> int:
        return self._read_int("counter")

    def increment_counter(self) -> None:
        self._bump("counter")

    def reset_counter(self) -> None:
        self.client.delete(self._key("counter"))

    @property
    def success_counter(self) -> int:
        return self._read_int("success")

    def increment_success_counter(self) -> None:
        self._bump("success")

    def reset_success_counter(self) -> None:
        self.client.delete(self._key("success"))

    @property
    def opened_at(self) -> datetime | None:
        # ISO text keeps naive/aware exactly as pybreaker wrote it
        raw = self.client.get(self._key("opened_at"))
        return datetime.fromisoformat(raw) if raw else None

    @opened_at.setter
    def opened_at(self, value: datetime | None) -> None:
        if value is None:
            self.client.delete(self._key("opened_at"))
        else:
            self.client.set(self._key("opened_at"), value.isoformat(), ex=settings.cb_open_seconds * 2)


class BreakerLogListener(pybreaker.CircuitBreakerListener):
    def __init__(self, name: str) -> None:
        self.name = name

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        logger.warning(
            "rpc_breaker_state_change",
            extra={
                "breaker_name": self.name,
                "old_state": getattr(old_state, "name", old_state),
                "new_state": getattr(new_state, "name", new_state),
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.info("rpc_breaker_failure", extra={"breaker_name": self.name, "error": type(exc).__name__})


_breakers: dict[str, pybreaker.CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """One process-wide breaker per dependency name, sharing Redis state across workers."""
    breaker = _breakers.get(name)
    if breaker is None:
        breaker = pybreaker.CircuitBreaker(
            fail_max=settings.cb_failure_threshold,
            reset_timeout=settings.cb_open_seconds,
            state_storage=RedisCircuitBreakerStorage(name),
            listeners=[BreakerLogListener(name)],
        )
        _breakers[name] = breaker
    return breaker
