"""
Request coalescing to prevent duplicate fetches for the same key.

When multiple concurrent callers ask for the same key, only one fetch is
started and every caller shares its result.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Tuple

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress fetch."""
    task: "asyncio.Future[Any]"
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Registry of outstanding fetches, at most one per key.

    Pattern:
    - First request for a key starts the fetch and registers it
    - Subsequent requests for the same key join the registered task
    - When the task settles it is unregistered and every waiter sees the
      same result or the same error

    Check-and-register never suspends, so two coroutines on the same event
    loop cannot both start a fetch for one key.

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch("posts-page-1", fetch_posts)
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightRequest] = {}

    def start(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Tuple["asyncio.Future[Any]", bool]:
        """
        Join the outstanding fetch for ``cache_key`` or start a new one.

        Returns:
            (task, started) where ``started`` is True if this call created it
        """
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None and not in_flight.task.done():
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {cache_key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            return in_flight.task, False

        task = asyncio.ensure_future(fetch_fn())
        self._in_flight[cache_key] = InFlightRequest(task=task)
        task.add_done_callback(partial(self._settle, cache_key))
        logger.debug(f"Initiating fetch for {cache_key}")
        return task, True

    async def get_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight fetch or initiate a new one.

        A caller that is cancelled while waiting does not cancel the shared
        fetch for the other waiters.

        Raises:
            Exception: Any error from fetch_fn is propagated to every waiter
        """
        task, _ = self.start(cache_key, fetch_fn)
        return await asyncio.shield(task)

    def _settle(self, cache_key: str, task: "asyncio.Future[Any]") -> None:
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None and in_flight.task is task:
            del self._in_flight[cache_key]

        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Fetch failed for {cache_key}: {task.exception()}")

    def is_in_flight(self, cache_key: str) -> bool:
        in_flight = self._in_flight.get(cache_key)
        return in_flight is not None and not in_flight.task.done()

    def tasks(self) -> List["asyncio.Future[Any]"]:
        return [in_flight.task for in_flight in self._in_flight.values()]

    def cancel_all(self) -> int:
        """Cancel every outstanding fetch. Returns the number cancelled."""
        tasks = self.tasks()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} in-flight fetches")
        return len(tasks)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight fetches."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
