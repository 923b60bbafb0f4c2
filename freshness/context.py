"""
Explicit wiring of the freshness components.

A FreshnessContext is built once at startup and handed to whatever needs
the cache, the coordinator, or the upstream client.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from config.settings import Settings, settings as app_settings
from freshness.api_client import ApiClient
from freshness.cache.core import CacheOptions
from freshness.cache.revalidation import RevalidationCoordinator
from freshness.cache.store import CacheStore
from freshness.pagination.engine import PageFetcher, PaginationEngine
from freshness.pool import ConcurrencyLimiter
from freshness.storage.base import KeyValueStore
from freshness.storage.memory import InMemoryKeyValueStore
from freshness.storage.sql import SqlKeyValueStore

logger = logging.getLogger("context")


@dataclass
class FreshnessContext:
    """Components shared by one application instance."""
    settings: Settings
    store: KeyValueStore
    cache: CacheStore
    coordinator: RevalidationCoordinator
    api: ApiClient
    limiter: ConcurrencyLimiter = field(init=False)

    def __post_init__(self):
        self.limiter = ConcurrencyLimiter(self.settings.pool_concurrency)

    def paginator(self, fetch_page: PageFetcher, page_size: Optional[int] = None) -> PaginationEngine:
        """New pagination engine using the configured page size limits."""
        size = page_size or self.settings.default_page_size
        return PaginationEngine(fetch_page, page_size=min(size, self.settings.max_page_size))

    async def close(self) -> None:
        await self.coordinator.close()
        self.api.close()
        if isinstance(self.store, SqlKeyValueStore):
            self.store.dispose()


def build_store(settings: Settings) -> KeyValueStore:
    if settings.storage_backend == "sql":
        logger.info(f"Using SQL cache storage at {settings.cache_db_url}")
        return SqlKeyValueStore(settings.cache_db_url)
    return InMemoryKeyValueStore()


def build_context(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    api: Optional[ApiClient] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FreshnessContext:
    """
    Construct every component from ``settings``.

    Args:
        settings: Configuration (defaults to the environment-loaded settings)
        store: Replace the configured storage backend
        api: Replace the upstream client
        clock: Time source for the cache, in epoch seconds
    """
    settings = settings or app_settings
    store = store if store is not None else build_store(settings)
    cache = CacheStore(
        store,
        prefix=settings.cache_prefix,
        default_ttl=settings.default_ttl_seconds,
        clock=clock,
    )
    options = CacheOptions(
        ttl=settings.default_ttl_seconds,
        stale_while_revalidate=settings.stale_while_revalidate,
    )
    return FreshnessContext(
        settings=settings,
        store=store,
        cache=cache,
        coordinator=RevalidationCoordinator(cache, default_options=options),
        api=api or ApiClient.from_settings(settings),
    )
