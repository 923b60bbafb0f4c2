"""
Incremental pagination: state machine, dedup-merge, and cached page fetching.
"""
from .models import PagedResult, PaginationState, Phase
from .merge import dedup_merge, default_identity
from .engine import PaginationEngine, DEFAULT_PAGE_SIZE
from .cached import cached_page_fetcher, page_cache_key

__all__ = [
    "PagedResult",
    "PaginationState",
    "Phase",
    "dedup_merge",
    "default_identity",
    "PaginationEngine",
    "DEFAULT_PAGE_SIZE",
    "cached_page_fetcher",
    "page_cache_key",
]
