"""
Key-value storage backends for the cache layer.
"""
from .base import KeyValueStore
from .memory import InMemoryKeyValueStore
from .sql import SqlKeyValueStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqlKeyValueStore",
]
