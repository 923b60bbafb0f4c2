"""
Freshness - client-side data freshness.

TTL caching, stale-while-revalidate with request coalescing, bounded
concurrency for batched fetches, and incremental pagination.
"""
from .errors import DeserializationFailure, FetchFailure, FreshnessError, StorageFailure
from .cancellation import CancellationToken
from .cache import CacheEntry, CacheOptions, CacheStore, RevalidationCoordinator, RevalidationResult
from .pool import ConcurrencyLimiter, TaskOutcome, promise_pool
from .pagination import PagedResult, PaginationEngine, PaginationState, Phase, dedup_merge

__all__ = [
    "DeserializationFailure",
    "FetchFailure",
    "FreshnessError",
    "StorageFailure",
    "CancellationToken",
    "CacheEntry",
    "CacheOptions",
    "CacheStore",
    "RevalidationCoordinator",
    "RevalidationResult",
    "ConcurrencyLimiter",
    "TaskOutcome",
    "promise_pool",
    "PagedResult",
    "PaginationEngine",
    "PaginationState",
    "Phase",
    "dedup_merge",
]
