from unittest.mock import patch

import pybreaker
import pytest


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = str(value)

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)

    def expire(self, key, seconds):
        pass

    def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def fake_redis():
    fake = FakeRedis()
    with patch("redis.Redis.from_url", return_value=fake):
        yield fake


@pytest.fixture
def breaker_module(fake_redis):
    import serenade.services.circuit_breaker as module

    return module


def test_opens_after_threshold_and_shares_state(fake_redis, breaker_module):
    breaker = pybreaker.CircuitBreaker(
        fail_max=2,
        reset_timeout=60,
        state_storage=breaker_module.RedisCircuitBreakerStorage("test_provider"),
        listeners=[breaker_module.CircuitBreakerListener("test_provider")],
    )

    def boom():
        raise RuntimeError("provider down")

    with pytest.raises(RuntimeError):
        breaker.call(boom)
    assert fake_redis.get("cb:test_provider:counter") == "1"

    with pytest.raises(pybreaker.CircuitBreakerError):
        breaker.call(boom)
    assert fake_redis.get("cb:test_provider:state") == pybreaker.STATE_OPEN

    # A second process reading the same keys sees the open breaker
    other = breaker_module.RedisCircuitBreakerStorage("test_provider")
    assert other.state == pybreaker.STATE_OPEN
    assert other.opened_at is not None


def test_success_resets_counter(fake_redis, breaker_module):
    storage = breaker_module.RedisCircuitBreakerStorage("reset_provider")
    breaker = pybreaker.CircuitBreaker(fail_max=3, reset_timeout=60, state_storage=storage)
    storage.increment_counter()

    assert breaker.call(lambda: "ok") == "ok"
    assert storage.counter == 0


def test_get_circuit_breaker_is_cached(breaker_module):
    assert breaker_module.get_circuit_breaker("audio_provider") is breaker_module.audio_provider_breaker
