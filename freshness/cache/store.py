"""
Best-effort TTL cache over an injected key-value store.

A broken cache must never break the caller: storage and deserialization
failures are logged and surface as "no cached value".
"""
import json
import logging
import time
from typing import Any, Callable, Optional

from freshness.errors import DeserializationFailure
from freshness.storage.base import KeyValueStore

from .core import CacheEntry, DEFAULT_TTL_SECONDS

logger = logging.getLogger("cache.store")

DEFAULT_PREFIX = "@freshness:"

Clock = Callable[[], float]


class CacheStore:
    """
    Serializes CacheEntry values into a KeyValueStore and answers staleness.

    Usage:
        cache = CacheStore(InMemoryKeyValueStore())
        await cache.set("posts-page-1", posts, ttl=60)
        entry = await cache.get("posts-page-1")
        if entry and not cache.is_stale(entry, 60):
            ...
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: str = DEFAULT_PREFIX,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the cache store.

        Args:
            store: Backing key-value store
            prefix: Namespace prepended to every key
            default_ttl: TTL used when neither the call nor the entry has one
            clock: Returns the current time in epoch seconds
        """
        self._store = store
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._clock = clock or time.time

    def now(self) -> float:
        return self._clock()

    def _storage_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[CacheEntry[Any]]:
        """Return the entry for ``key``, or None if absent or unreadable."""
        storage_key = self._storage_key(key)
        try:
            raw = await self._store.get(storage_key)
        except Exception as e:
            logger.warning(f"Cache get failed: {key} - {e}")
            return None

        if raw is None:
            return None

        try:
            return _deserialize(key, raw)
        except DeserializationFailure as e:
            logger.warning(str(e))
            return None

    async def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """
        Write ``data`` under ``key`` stamped with the current time.

        Overwrites unconditionally. Failures are logged and swallowed.
        """
        entry = CacheEntry(key=key, data=data, written_at=self.now(), ttl=ttl)
        try:
            payload = json.dumps(entry.to_dict())
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache set skipped, value not serializable: {key} - {e}")
            return

        try:
            await self._store.set(self._storage_key(key), payload)
            logger.debug(f"Cached {key} [ttl={ttl}]")
        except Exception as e:
            logger.warning(f"Cache set failed: {key} - {e}")

    async def remove(self, key: str) -> None:
        try:
            await self._store.remove(self._storage_key(key))
        except Exception as e:
            logger.warning(f"Cache remove failed: {key} - {e}")

    async def clear(self) -> None:
        """Remove every entry in this store's namespace."""
        try:
            if self.prefix:
                keys = [k for k in await self._store.keys() if k.startswith(self.prefix)]
                for storage_key in keys:
                    await self._store.remove(storage_key)
                logger.info(f"Cleared {len(keys)} cache entries")
            else:
                await self._store.clear()
                logger.info("Cleared cache")
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")

    async def size(self) -> int:
        """Number of entries in this store's namespace."""
        try:
            keys = await self._store.keys()
        except Exception as e:
            logger.warning(f"Cache size failed: {e}")
            return 0
        return sum(1 for k in keys if k.startswith(self.prefix))

    def is_stale(self, entry: CacheEntry[Any], ttl: Optional[float] = None) -> bool:
        """True once more than ``ttl`` seconds have passed since the write."""
        if ttl is None:
            ttl = entry.ttl if entry.ttl is not None else self.default_ttl
        return self.now() - entry.written_at > ttl


def _deserialize(key: str, raw: str) -> CacheEntry[Any]:
    try:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise TypeError(f"expected an object, got {type(payload).__name__}")
        return CacheEntry.from_dict(payload)
    except (ValueError, TypeError, KeyError) as e:
        raise DeserializationFailure(key, e) from e
