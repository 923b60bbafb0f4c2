"""
Stale-while-revalidate orchestration over a CacheStore.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from freshness.cancellation import CancellationToken
from freshness.errors import FetchFailure, FreshnessError

from .coalescer import RequestCoalescer
from .core import CacheOptions, CacheSource, RevalidationResult
from .store import CacheStore

logger = logging.getLogger("cache.revalidation")

FetchFn = Callable[[], Awaitable[Any]]


class RevalidationCoordinator:
    """
    Serves cached data with stale-while-revalidate semantics:
    - Cache miss: fetch, store, return fresh
    - Fresh hit: return cached data without fetching
    - Stale hit with SWR: return stale data now, refresh in the background
    - Stale hit without SWR: fetch, store, return fresh

    Every fetch for a key goes through one in-flight registry, so however
    many callers arrive while a refresh is outstanding, the fetch function
    runs once.
    """

    def __init__(
        self,
        cache: CacheStore,
        default_options: Optional[CacheOptions] = None,
        token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            cache: Cache store used for reads and writes
            default_options: Options used when a call passes none
            token: Liveness token; once cancelled no fetched value is written
        """
        self._cache = cache
        self._coalescer = RequestCoalescer()
        self.default_options = default_options or CacheOptions(ttl=cache.default_ttl)
        self._token = token or CancellationToken()

        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
        }

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def closed(self) -> bool:
        return self._token.cancelled

    async def revalidate(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: Optional[CacheOptions] = None,
    ) -> RevalidationResult[Any]:
        """
        Get data for ``key`` from cache or from ``fetch_fn``.

        Raises:
            FetchFailure: The fetch failed and no usable cached value exists
        """
        self._ensure_open()
        options = options or self.default_options

        entry = await self._cache.get(key)

        # Cache miss
        if entry is None:
            logger.info(f"CACHE MISS: {key}")
            self._stats["misses"] += 1
            data, written_at = await self._fetch_shared(key, fetch_fn, options.ttl)
            return RevalidationResult(data, False, CacheSource.UPSTREAM, written_at, options.ttl)

        # Cache hit - fresh
        if not self._cache.is_stale(entry, options.ttl):
            age = entry.age_seconds(self._cache.now())
            logger.debug(f"CACHE HIT (fresh): {key} [age={age:.1f}s]")
            self._stats["hits_fresh"] += 1
            return RevalidationResult(entry.data, False, CacheSource.FRESH, entry.written_at, options.ttl)

        # Stale, serve now and refresh behind the caller
        if options.stale_while_revalidate:
            age = entry.age_seconds(self._cache.now())
            logger.info(f"CACHE HIT (stale, revalidating): {key} [age={age:.1f}s]")
            self._stats["hits_stale"] += 1
            self._trigger_background_revalidate(key, fetch_fn, options.ttl)
            return RevalidationResult(entry.data, True, CacheSource.STALE, entry.written_at, options.ttl)

        # Stale without SWR - must refetch
        logger.info(f"CACHE EXPIRED: {key}")
        self._stats["misses"] += 1
        data, written_at = await self._fetch_shared(key, fetch_fn, options.ttl)
        return RevalidationResult(data, False, CacheSource.UPSTREAM, written_at, options.ttl)

    async def refresh(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: Optional[CacheOptions] = None,
    ) -> RevalidationResult[Any]:
        """Bypass the cached value, fetch and store a fresh one."""
        self._ensure_open()
        options = options or self.default_options
        logger.info(f"FORCE REFRESH: {key}")
        self._stats["misses"] += 1
        data, written_at = await self._fetch_shared(key, fetch_fn, options.ttl)
        return RevalidationResult(data, False, CacheSource.UPSTREAM, written_at, options.ttl)

    async def invalidate(self, key: str) -> None:
        await self._cache.remove(key)
        logger.info(f"Invalidated cache: {key}")

    def is_revalidating(self, key: str) -> bool:
        return self._coalescer.is_in_flight(key)

    async def _fetch_shared(self, key: str, fetch_fn: FetchFn, ttl: float) -> Tuple[Any, float]:
        task, started = self._coalescer.start(
            key, partial(self._fetch_and_store, key, fetch_fn, ttl)
        )
        if not started:
            logger.debug(f"Joining in-flight fetch: {key}")
        return await asyncio.shield(task)

    async def _fetch_and_store(self, key: str, fetch_fn: FetchFn, ttl: float) -> Tuple[Any, float]:
        try:
            data = await fetch_fn()
        except asyncio.CancelledError:
            raise
        except FetchFailure:
            raise
        except Exception as e:
            raise FetchFailure(f"Fetch failed for {key}: {e}", key=key, cause=e) from e

        written_at = self._cache.now()
        if self._token.cancelled:
            logger.debug(f"Coordinator closed, not caching result for {key}")
            return data, written_at

        await self._cache.set(key, data, ttl)
        return data, written_at

    def _trigger_background_revalidate(self, key: str, fetch_fn: FetchFn, ttl: float) -> None:
        """Start a refresh for ``key`` unless one is already running."""
        if self._coalescer.is_in_flight(key):
            logger.debug(f"Already revalidating: {key}")
            return

        task, _ = self._coalescer.start(
            key, partial(self._fetch_and_store, key, fetch_fn, ttl)
        )
        task.add_done_callback(partial(self._on_background_done, key))
        logger.debug(f"Background revalidation started: {key}")

    def _on_background_done(self, key: str, task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            logger.debug(f"Background revalidation cancelled: {key}")
            return

        error = task.exception()
        if error is not None:
            self._stats["revalidation_failures"] += 1
            logger.warning(f"Background revalidation failed: {key} - {error}")
            return

        self._stats["revalidations"] += 1
        logger.debug(f"Background revalidation complete: {key}")

    async def wait_idle(self) -> None:
        """Wait until every outstanding fetch has settled."""
        while True:
            tasks = self._coalescer.tasks()
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
            # let done callbacks unregister settled tasks
            await asyncio.sleep(0)

    async def close(self) -> None:
        """
        Stop the coordinator. Outstanding refreshes are cancelled and no
        value that settles afterwards is written to the cache.
        """
        if self._token.cancelled:
            return
        self._token.cancel()
        tasks = self._coalescer.tasks()
        self._coalescer.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _ensure_open(self) -> None:
        if self._token.cancelled:
            raise FreshnessError("Revalidation coordinator is closed")

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        total_requests = total_hits + self._stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
        }
