"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar
from enum import Enum

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300.0  # 5 minutes


class DataCategory(Enum):
    """Categories of data with different freshness behaviors."""
    REALTIME = "realtime"          # seconds, no SWR
    VOLATILE = "volatile"          # under a minute
    STANDARD = "standard"          # minutes, SWR
    STABLE = "stable"              # hours, SWR


class CacheSource(Enum):
    """Where the returned data came from."""
    FRESH = "fresh"       # Within TTL
    STALE = "stale"       # Past TTL, served while revalidating
    UPSTREAM = "upstream" # Fetched from the fetch function


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    A cached value stamped with the time it was written.

    Entries are never mutated; an update replaces the entry wholesale.
    """
    key: str
    data: T
    written_at: float
    ttl: Optional[float] = None

    def age_seconds(self, now: float) -> float:
        """Seconds between the write and ``now``."""
        return max(0.0, now - self.written_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "data": self.data,
            "writtenAt": self.written_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CacheEntry[Any]":
        ttl = payload.get("ttl")
        return cls(
            key=str(payload["key"]),
            data=payload["data"],
            written_at=float(payload["writtenAt"]),
            ttl=float(ttl) if ttl is not None else None,
        )


@dataclass(frozen=True)
class CacheOptions:
    """Per-call freshness options. Never persisted."""
    ttl: float = DEFAULT_TTL_SECONDS
    stale_while_revalidate: bool = True

    def __post_init__(self):
        if self.ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {self.ttl}")


@dataclass
class CacheMeta:
    """
    Metadata about a cache access, included in API responses.
    """
    last_updated: str  # ISO timestamp
    cache_source: str  # "fresh", "stale", or "upstream"
    ttl_seconds: Optional[float] = None
    age_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {
            "lastUpdated": self.last_updated,
            "cacheSource": self.cache_source,
        }
        if self.ttl_seconds is not None:
            result["_debug"] = {
                "ttl": self.ttl_seconds,
                "age": round(self.age_seconds, 1) if self.age_seconds is not None else None,
            }
        return result


@dataclass(frozen=True)
class RevalidationResult(Generic[T]):
    """Outcome of a stale-while-revalidate read."""
    data: T
    stale: bool
    source: CacheSource
    written_at: float
    ttl: float

    def meta(self, now: float) -> CacheMeta:
        return CacheMeta(
            last_updated=_iso_utc(self.written_at),
            cache_source=self.source.value,
            ttl_seconds=self.ttl,
            age_seconds=max(0.0, now - self.written_at),
        )


def _iso_utc(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None).isoformat() + "Z"
