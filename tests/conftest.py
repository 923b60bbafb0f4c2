"""
Shared fixtures: a controllable clock and in-memory cache wiring.
"""
import pytest

from freshness.cache.revalidation import RevalidationCoordinator
from freshness.cache.store import CacheStore
from freshness.errors import StorageFailure
from freshness.storage.memory import InMemoryKeyValueStore


class FakeClock:
    """Simulated wall clock in epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """Key-value store whose every operation fails."""

    def __init__(self):
        self.attempts = 0

    async def _fail(self, operation, key=None):
        self.attempts += 1
        raise StorageFailure(operation, key, OSError("disk unavailable"))

    async def get(self, key):
        await self._fail("get", key)

    async def set(self, key, value):
        await self._fail("set", key)

    async def remove(self, key):
        await self._fail("remove", key)

    async def clear(self):
        await self._fail("clear")

    async def keys(self):
        await self._fail("keys")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(kv_store, clock):
    return CacheStore(kv_store, clock=clock)


@pytest.fixture
def coordinator(cache):
    return RevalidationCoordinator(cache)
