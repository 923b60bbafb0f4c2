"""
Page fetching through the revalidation coordinator.
"""
from typing import Any, Dict, Optional

from freshness.cache.core import CacheOptions
from freshness.cache.revalidation import RevalidationCoordinator

from .engine import PageFetcher
from .models import PagedResult


def page_cache_key(key_prefix: str, page: int) -> str:
    return f"{key_prefix}-page-{page}"


def cached_page_fetcher(
    coordinator: RevalidationCoordinator,
    key_prefix: str,
    fetch_page: PageFetcher,
    options: Optional[CacheOptions] = None,
) -> PageFetcher:
    """
    Wrap ``fetch_page`` so each page is cached under ``{key_prefix}-page-{n}``.

    Stale pages are served immediately and refreshed in the background
    when ``options`` allow it.
    """

    async def fetch(page: int, page_size: int) -> Dict[str, Any]:
        async def load() -> Dict[str, Any]:
            raw = await fetch_page(page, page_size)
            return PagedResult.coerce(raw, page_size, page).to_dict()

        result = await coordinator.revalidate(page_cache_key(key_prefix, page), load, options)
        return result.data

    return fetch
