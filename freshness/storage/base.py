"""
Key-value storage contract used by the cache layer.
"""
from typing import List, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Persistent string storage keyed by string.

    Implementations raise StorageFailure when an operation cannot complete.
    Removing an absent key is not an error.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def clear(self) -> None:
        ...

    async def keys(self) -> List[str]:
        ...
