"""
Incremental-list pagination with a four-state loading machine.

    IDLE --load_initial--> LOADING_INITIAL --ok--> IDLE(page=1)   | --fail--> ERROR
    IDLE --refresh-------> REFRESHING      --ok--> IDLE(page=1)   | --fail--> ERROR
    IDLE --load_more-----> LOADING_MORE    --ok--> IDLE(page+1)   | --fail--> ERROR

Only one load runs at a time; calls made while a load is in flight are
no-ops. Failures keep the items loaded so far.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from freshness.cancellation import CancellationToken

from .merge import IdentityFn, dedup_merge, default_identity
from .models import PagedResult, PaginationState, Phase

logger = logging.getLogger("pagination.engine")

T = TypeVar("T")

PageFetcher = Callable[[int, int], Awaitable[Any]]

DEFAULT_PAGE_SIZE = 10


class PaginationEngine(Generic[T]):
    """
    Owns a PaginationState and advances it in response to page fetches.

    Usage:
        engine = PaginationEngine(lambda page, size: api.fetch_posts(page, size))
        await engine.load_initial()
        await engine.load_more()
        items = engine.state.items
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_size: int = DEFAULT_PAGE_SIZE,
        identity: IdentityFn = default_identity,
        token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the engine.

        Args:
            fetch_page: ``async (page, page_size)`` returning a page; pages are 1-indexed
            page_size: Items requested per page
            identity: Maps an item to its deduplication key
            token: Liveness token; once cancelled, late results are dropped
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._fetch_page = fetch_page
        self.page_size = page_size
        self._identity = identity
        self._token = token or CancellationToken()
        self._state: PaginationState[T] = PaginationState()
        self._in_flight = False
        self._generation = 0
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> PaginationState[T]:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def disposed(self) -> bool:
        return self._token.cancelled

    async def load_initial(self) -> bool:
        """Load the first page. Returns True if a page was applied."""
        return await self._load(Phase.LOADING_INITIAL, 1)

    async def refresh(self) -> bool:
        """Reload the first page, replacing every loaded item on success."""
        return await self._load(Phase.REFRESHING, 1)

    async def load_more(self) -> bool:
        """Load the next page if there is one and nothing else is loading."""
        if not self._state.has_more:
            logger.debug("load_more ignored, no more pages")
            return False
        return await self._load(Phase.LOADING_MORE, self._state.page + 1)

    def reset(self) -> None:
        """Return to the initial empty state; an in-flight load is discarded."""
        self._generation += 1
        self._in_flight = False
        self._state = PaginationState()
        self.last_error = None

    def dispose(self) -> None:
        """Tear down the engine. Results settling afterwards are ignored."""
        self._token.cancel()
        self._in_flight = False

    async def _load(self, phase: Phase, page: int) -> bool:
        if self._token.cancelled:
            logger.debug(f"{phase.value} ignored, engine disposed")
            return False
        if self._in_flight:
            logger.debug(f"{phase.value} ignored, load already in progress")
            return False

        self._in_flight = True
        generation = self._generation
        previous = self._state
        self._state = replace(previous, phase=phase, error=None)

        try:
            raw = await self._fetch_page(page, self.page_size)
            result = PagedResult.coerce(raw, self.page_size, page)
            base = previous.items if phase is Phase.LOADING_MORE else ()
            items = tuple(dedup_merge(base, result.items, self._identity))
        except asyncio.CancelledError:
            if self._is_current(generation):
                self._state = previous
            raise
        except Exception as e:
            if not self._is_current(generation):
                return False
            logger.warning(f"Page {page} failed during {phase.value}: {e}")
            self.last_error = e
            self._state = replace(self._state, phase=Phase.ERROR, error=str(e) or type(e).__name__)
            return False
        finally:
            if generation == self._generation:
                self._in_flight = False

        if not self._is_current(generation):
            logger.debug(f"Discarding page {page}, engine was reset or disposed")
            return False

        self.last_error = None
        self._state = PaginationState(
            items=items,
            page=page,
            has_more=result.has_more,
            phase=Phase.IDLE,
        )
        logger.debug(f"Loaded page {page}: {len(items)} items, has_more={result.has_more}")
        return True

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._token.cancelled
