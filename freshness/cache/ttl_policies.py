"""
Named freshness policies and resource-to-category mapping.
"""
from typing import Any, Dict, Optional

from .core import CacheOptions, DataCategory


# Freshness configuration by category (in seconds)
TTL_CONFIG: Dict[DataCategory, Dict[str, Any]] = {
    DataCategory.REALTIME: {
        "ttl": 5,                 # 5 seconds
        "allow_swr": False,       # Never serve stale realtime data
    },
    DataCategory.VOLATILE: {
        "ttl": 45,                # 45 seconds
        "allow_swr": False,
    },
    DataCategory.STANDARD: {
        "ttl": 300,               # 5 minutes
        "allow_swr": True,
    },
    DataCategory.STABLE: {
        "ttl": 21600,             # 6 hours
        "allow_swr": True,
    },
}


def get_options_for_category(
    category: DataCategory,
    ttl_override: Optional[float] = None,
) -> CacheOptions:
    """
    Build cache options for a data category.

    Args:
        category: The data category
        ttl_override: Replace the category TTL (e.g. from settings)

    Returns:
        CacheOptions for the category
    """
    config = TTL_CONFIG.get(category, TTL_CONFIG[DataCategory.STANDARD])
    ttl = ttl_override if ttl_override is not None else config["ttl"]
    return CacheOptions(ttl=float(ttl), stale_while_revalidate=config["allow_swr"])


def get_category_for_resource(resource: str, params: Optional[Dict[str, Any]] = None) -> DataCategory:
    """
    Determine the data category for a resource path.

    Single items by ID change rarely; search results change often.
    """
    params = params or {}

    if resource in ("live", "notifications"):
        return DataCategory.REALTIME

    if params.get("search") or resource.endswith("/search"):
        return DataCategory.VOLATILE

    if params.get("id") or resource in ("users", "categories"):
        return DataCategory.STABLE

    return DataCategory.STANDARD
