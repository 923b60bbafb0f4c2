"""
Error taxonomy for the freshness subsystem.

Storage and deserialization failures are absorbed by the cache layer and
never reach callers. Fetch failures propagate to the immediate caller
except during a background revalidation.
"""
from typing import Optional


class FreshnessError(Exception):
    """Base class for all freshness errors."""


class FetchFailure(FreshnessError):
    """A caller-supplied fetch function raised."""

    def __init__(self, message: str, key: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.key = key
        self.cause = cause


class StorageFailure(FreshnessError):
    """A key-value store operation failed."""

    def __init__(self, operation: str, key: Optional[str] = None, cause: Optional[BaseException] = None):
        target = f" for key {key!r}" if key is not None else ""
        super().__init__(f"Storage {operation} failed{target}: {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause


class DeserializationFailure(FreshnessError):
    """A stored payload could not be parsed back into a cache entry."""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        super().__init__(f"Could not deserialize cache entry {key!r}: {cause}")
        self.key = key
        self.cause = cause
