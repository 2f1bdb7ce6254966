"""Fixtures for idempotency cache tests."""

import pytest

from infrastructure.idempotency.factory import reset_cache
from infrastructure.idempotency.memory import InMemoryCache


class FakeTime:
    """Settable replacement for time.time."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def memory_cache(fake_time):
    """InMemoryCache driven by a fake clock."""
    return InMemoryCache(time_func=fake_time)


@pytest.fixture
def sample_response():
    """Sample consumer result for caching."""
    return {
        "status": "processed",
        "should_ack": True,
        "notification": {"id": "n-1", "status": "sent"},
    }


@pytest.fixture(autouse=True)
def reset_cache_singleton():
    """Reset the cache singleton before each test."""
    reset_cache()
    yield
    reset_cache()
