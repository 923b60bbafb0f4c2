"""
Caching module with TTL entries, request coalescing, and stale-while-revalidate.
"""
from .core import (
    CacheEntry,
    CacheMeta,
    CacheOptions,
    CacheSource,
    DataCategory,
    RevalidationResult,
    DEFAULT_TTL_SECONDS,
)
from .ttl_policies import (
    TTL_CONFIG,
    get_options_for_category,
    get_category_for_resource,
)
from .store import CacheStore
from .coalescer import RequestCoalescer
from .revalidation import RevalidationCoordinator

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMeta",
    "CacheOptions",
    "CacheSource",
    "DataCategory",
    "RevalidationResult",
    "DEFAULT_TTL_SECONDS",
    # TTL policies
    "TTL_CONFIG",
    "get_options_for_category",
    "get_category_for_resource",
    # Storage
    "CacheStore",
    # Coalescing
    "RequestCoalescer",
    # Revalidation
    "RevalidationCoordinator",
]
