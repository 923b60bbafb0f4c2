"""
Append-only dedup-merge for incrementally loaded lists.
"""
from typing import Any, Callable, Hashable, Iterable, List, Mapping, TypeVar

T = TypeVar("T")

IdentityFn = Callable[[Any], Hashable]


def default_identity(item: Any) -> Hashable:
    """Identity of an item: ``item["id"]`` for mappings, ``item.id`` otherwise."""
    if isinstance(item, Mapping):
        return item["id"]
    return item.id


def dedup_merge(
    existing: Iterable[T],
    incoming: Iterable[T],
    identity: IdentityFn = default_identity,
) -> List[T]:
    """
    Append incoming items whose identity is not already present.

    Existing items keep their order and are never replaced. Incoming items
    keep their relative order; repeats inside ``incoming`` are dropped too.
    Merging only known identities returns the existing items unchanged.
    """
    merged = list(existing)
    seen = {identity(item) for item in merged}

    for item in incoming:
        item_id = identity(item)
        if item_id in seen:
            continue
        seen.add(item_id)
        merged.append(item)

    return merged
