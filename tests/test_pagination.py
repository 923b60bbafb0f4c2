"""
Tests for the pagination engine, dedup-merge, and paged result handling.
"""
import asyncio
from types import SimpleNamespace

import pytest

from freshness.cache.core import CacheOptions
from freshness.cancellation import CancellationToken
from freshness.pagination import (
    PagedResult,
    PaginationEngine,
    PaginationState,
    Phase,
    cached_page_fetcher,
    dedup_merge,
    page_cache_key,
)


class FakeFeed:
    """Paged fetch function over scripted responses, keyed by page number."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []
        self.gate = None
        self.errors = {}

    def hold(self):
        self.gate = asyncio.Event()
        return self.gate

    async def __call__(self, page, page_size):
        self.calls.append((page, page_size))
        if self.gate is not None:
            await self.gate.wait()
        if page in self.errors:
            raise self.errors.pop(page)
        return self.pages[page]


def ids(items):
    return [item["id"] for item in items]


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# Dedup-merge
# =============================================================================

class TestDedupMerge:
    """Tests for the append-only merge."""

    def test_skips_known_identities(self):
        """Test that duplicates of existing items are dropped."""
        merged = dedup_merge([{"id": 1}, {"id": 2}], [{"id": 2}, {"id": 3}])
        assert ids(merged) == [1, 2, 3]

    def test_existing_items_are_never_replaced(self):
        """Test that the existing copy wins over an incoming duplicate."""
        merged = dedup_merge([{"id": 1, "v": "old"}], [{"id": 1, "v": "new"}])
        assert merged == [{"id": 1, "v": "old"}]

    def test_preserves_incoming_order(self):
        """Test that appended items keep their relative order."""
        merged = dedup_merge([{"id": 5}], [{"id": 9}, {"id": 2}, {"id": 7}])
        assert ids(merged) == [5, 9, 2, 7]

    def test_drops_duplicates_within_batch(self):
        """Test that repeats inside one incoming batch are dropped."""
        merged = dedup_merge([], [{"id": 1}, {"id": 1}, {"id": 2}])
        assert ids(merged) == [1, 2]

    def test_merge_is_idempotent(self):
        """Test that merging only known identities changes nothing."""
        items = [{"id": 1}, {"id": 2}, {"id": 3}]
        assert dedup_merge(items, [{"id": 3}, {"id": 1}]) == items
        assert dedup_merge(dedup_merge(items, items), items) == items

    def test_attribute_identity_and_custom_key(self):
        """Test objects with an ``id`` attribute and a custom identity function."""
        a, b = SimpleNamespace(id="a"), SimpleNamespace(id="b")
        assert dedup_merge([a], [a, b]) == [a, b]

        merged = dedup_merge(["x1"], ["x1", "y2"], identity=lambda s: s[1])
        assert merged == ["x1", "y2"]


# =============================================================================
# PagedResult
# =============================================================================

class TestPagedResult:
    """Tests for normalizing fetch results."""

    def test_mapping_with_has_more(self):
        """Test a transport that reports hasMore."""
        result = PagedResult.coerce({"data": [{"id": 1}], "hasMore": True}, page_size=10)
        assert result.items == ({"id": 1},)
        assert result.has_more is True

    def test_short_list_means_no_more_pages(self):
        """Test hasMore inference from a short page."""
        assert PagedResult.coerce([{"id": 1}], page_size=2).has_more is False
        assert PagedResult.coerce([{"id": 1}, {"id": 2}], page_size=2).has_more is True

    def test_paged_result_without_flag_is_inferred(self):
        """Test that a PagedResult missing has_more is inferred too."""
        result = PagedResult.coerce(PagedResult(items=({"id": 1},)), page_size=5, page=3)
        assert result.has_more is False
        assert result.page == 3

    @pytest.mark.parametrize("raw", ["text", 42, {"hasMore": True}, None])
    def test_unsupported_shapes_raise(self, raw):
        """Test that non-page values are rejected."""
        with pytest.raises(TypeError):
            PagedResult.coerce(raw, page_size=10)


# =============================================================================
# Engine state machine
# =============================================================================

class TestPaginationEngine:
    """Tests for load_initial/refresh/load_more transitions."""

    def test_initial_state(self):
        """Test the state before any load."""
        engine = PaginationEngine(FakeFeed())
        assert engine.state == PaginationState()
        assert engine.state.phase is Phase.IDLE
        assert engine.state.page == 0
        assert engine.state.has_more is True
        assert engine.state.items == ()

    @pytest.mark.asyncio
    async def test_load_more_merges_and_dedups(self):
        """Test the page-size-2 scenario with id 2 repeated on page two."""
        feed = FakeFeed({
            1: PagedResult(items=({"id": 1}, {"id": 2}), has_more=True),
            2: PagedResult(items=({"id": 2}, {"id": 3}), has_more=False),
        })
        engine = PaginationEngine(feed, page_size=2)

        assert await engine.load_initial() is True
        assert await engine.load_more() is True

        assert ids(engine.state.items) == [1, 2, 3]
        assert engine.state.page == 2
        assert engine.state.has_more is False
        assert engine.state.phase is Phase.IDLE
        assert feed.calls == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_phase_while_loading(self):
        """Test that each load exposes its own phase while in flight."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}, {"id": 4}]})
        engine = PaginationEngine(feed, page_size=2)

        for load, phase in (
            (engine.load_initial, Phase.LOADING_INITIAL),
            (engine.load_more, Phase.LOADING_MORE),
            (engine.refresh, Phase.REFRESHING),
        ):
            gate = feed.hold()
            pending = asyncio.ensure_future(load())
            await settle()
            assert engine.state.phase is phase
            assert engine.state.is_loading
            gate.set()
            assert await pending is True
            assert engine.state.phase is Phase.IDLE

    @pytest.mark.asyncio
    async def test_double_load_more_fetches_once(self):
        """Test that a second load_more during the first is a no-op."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}, {"id": 4}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        gate = feed.hold()
        first = asyncio.ensure_future(engine.load_more())
        second = asyncio.ensure_future(engine.load_more())
        await settle()
        gate.set()

        assert await first is True
        assert await second is False
        assert feed.calls == [(1, 2), (2, 2)]
        assert ids(engine.state.items) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_refresh_ignored_while_loading_more(self):
        """Test that transitions never interleave on one engine."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}, {"id": 4}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        gate = feed.hold()
        more = asyncio.ensure_future(engine.load_more())
        await settle()

        assert await engine.refresh() is False
        gate.set()
        assert await more is True
        assert engine.state.page == 2

    @pytest.mark.asyncio
    async def test_load_more_stops_when_no_more_pages(self):
        """Test that load_more does nothing once has_more is False."""
        feed = FakeFeed({1: [{"id": 1}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        assert engine.state.has_more is False
        assert await engine.load_more() is False
        assert feed.calls == [(1, 2)]

    @pytest.mark.asyncio
    async def test_refresh_replaces_items(self):
        """Test that a refresh drops previously loaded pages."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}, {"id": 4}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()
        await engine.load_more()

        feed.pages[1] = [{"id": 10}, {"id": 1}]
        assert await engine.refresh() is True

        assert ids(engine.state.items) == [10, 1]
        assert engine.state.page == 1

    @pytest.mark.asyncio
    async def test_initial_failure_moves_to_error(self):
        """Test that a failed first load reports the reason with no data."""
        feed = FakeFeed({1: [{"id": 1}]})
        feed.errors[1] = ConnectionError("offline")
        engine = PaginationEngine(feed, page_size=2)

        assert await engine.load_initial() is False

        assert engine.state.phase is Phase.ERROR
        assert engine.state.error == "offline"
        assert engine.state.is_empty
        assert isinstance(engine.last_error, ConnectionError)

        assert await engine.load_initial() is True
        assert engine.state.phase is Phase.IDLE
        assert engine.state.error is None

    @pytest.mark.asyncio
    async def test_load_more_failure_keeps_items_and_can_retry(self):
        """Test that a failed page leaves items intact and the same page retries."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}]})
        feed.errors[2] = TimeoutError("slow")
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        assert await engine.load_more() is False
        assert engine.state.phase is Phase.ERROR
        assert ids(engine.state.items) == [1, 2]
        assert engine.state.page == 1

        assert await engine.load_more() is True
        assert ids(engine.state.items) == [1, 2, 3]
        assert feed.calls[-2:] == [(2, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_items(self):
        """Test that a failed refresh does not clear the list."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        feed.errors[1] = RuntimeError("server error")
        assert await engine.refresh() is False

        assert engine.state.phase is Phase.ERROR
        assert ids(engine.state.items) == [1, 2]

    @pytest.mark.asyncio
    async def test_malformed_page_is_an_error(self):
        """Test that a page without items is reported, not raised."""
        feed = FakeFeed({1: {"unexpected": True}})
        engine = PaginationEngine(feed)

        assert await engine.load_initial() is False
        assert engine.state.phase is Phase.ERROR

    def test_page_size_must_be_positive(self):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            PaginationEngine(FakeFeed(), page_size=0)


# =============================================================================
# Liveness
# =============================================================================

class TestLiveness:
    """Tests that abandoned engines receive no late updates."""

    @pytest.mark.asyncio
    async def test_dispose_mid_fetch_drops_result(self):
        """Test that a page settling after dispose is not applied."""
        feed = FakeFeed({1: [{"id": 1}]})
        engine = PaginationEngine(feed)
        gate = feed.hold()

        pending = asyncio.ensure_future(engine.load_initial())
        await settle()
        engine.dispose()
        gate.set()

        assert await pending is False
        assert engine.state.items == ()
        assert engine.disposed
        assert await engine.load_initial() is False

    @pytest.mark.asyncio
    async def test_dispose_mid_fetch_drops_error(self):
        """Test that a failure settling after dispose does not flip the phase."""
        feed = FakeFeed({1: [{"id": 1}]})
        feed.errors[1] = RuntimeError("late")
        engine = PaginationEngine(feed)
        gate = feed.hold()

        pending = asyncio.ensure_future(engine.load_initial())
        await settle()
        engine.dispose()
        gate.set()

        assert await pending is False
        assert engine.state.phase is not Phase.ERROR

    @pytest.mark.asyncio
    async def test_cancelled_load_restores_previous_state(self):
        """Test that cancelling the awaiting coroutine releases the engine."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()
        before = engine.state

        feed.hold()
        pending = asyncio.ensure_future(engine.load_more())
        await settle()
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert engine.state == before
        assert not engine.in_flight

    @pytest.mark.asyncio
    async def test_shared_token_tears_down_engine(self):
        """Test that cancelling an owner's token disposes the engine too."""
        token = CancellationToken()
        feed = FakeFeed({1: [{"id": 1}]})
        engine = PaginationEngine(feed, token=token)

        token.cancel()

        assert engine.disposed
        assert await engine.load_initial() is False
        assert feed.calls == []

    @pytest.mark.asyncio
    async def test_reset_discards_in_flight_page(self):
        """Test that a reset wins over a page that was already loading."""
        feed = FakeFeed({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}]})
        engine = PaginationEngine(feed, page_size=2)
        await engine.load_initial()

        gate = feed.hold()
        pending = asyncio.ensure_future(engine.load_more())
        await settle()
        engine.reset()
        gate.set()

        assert await pending is False
        assert engine.state == PaginationState()


# =============================================================================
# Cached pages
# =============================================================================

class TestCachedPages:
    """Tests for page fetching through the revalidation coordinator."""

    @pytest.mark.asyncio
    async def test_pages_are_served_from_cache(self, coordinator, cache):
        """Test that a second engine reuses the cached first page."""
        feed = FakeFeed({1: PagedResult(items=({"id": 1}, {"id": 2}), has_more=True)})
        fetch = cached_page_fetcher(coordinator, "posts", feed, CacheOptions(ttl=60))

        first = PaginationEngine(fetch, page_size=2)
        second = PaginationEngine(fetch, page_size=2)
        await first.load_initial()
        await second.load_initial()

        assert len(feed.calls) == 1
        assert ids(second.state.items) == [1, 2]
        assert second.state.has_more is True
        cached = await cache.get(page_cache_key("posts", 1))
        assert cached.data["hasMore"] is True
        assert page_cache_key("posts", 1) == "posts-page-1"
