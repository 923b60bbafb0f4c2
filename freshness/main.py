"""
Freshness - FastAPI service exposing cached upstream data
Every upstream read goes through the stale-while-revalidate coordinator
"""
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request

from freshness.cache.core import CacheOptions, CacheSource, RevalidationResult
from freshness.cache.ttl_policies import get_category_for_resource, get_options_for_category
from freshness.context import FreshnessContext, build_context
from freshness.errors import FetchFailure
from freshness.pagination.cached import page_cache_key
from freshness.pagination.models import PagedResult

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Freshness"


def create_app(context: Optional[FreshnessContext] = None) -> FastAPI:
    """Build the application around ``context`` (built from settings if omitted)."""
    context = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.context.close()

    app = FastAPI(
        title=APP_NAME,
        description="Cached upstream data with stale-while-revalidate",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.context = context
    _register_routes(app)
    return app


def _context(request: Request) -> FreshnessContext:
    return request.app.state.context


async def _read(
    ctx: FreshnessContext,
    key: str,
    fetch,
    force_refresh: bool = False,
    options: Optional[CacheOptions] = None,
) -> RevalidationResult:
    if not ctx.settings.cache_enabled:
        data = await fetch()
        now = ctx.cache.now()
        return RevalidationResult(data, False, CacheSource.UPSTREAM, now, 0.0)
    if force_refresh:
        return await ctx.coordinator.refresh(key, fetch, options)
    return await ctx.coordinator.revalidate(key, fetch, options)


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "full": f"{APP_NAME} {APP_VERSION}",
        }

    @app.get("/cache/stats")
    async def cache_stats(request: Request):
        """Get cache statistics."""
        ctx = _context(request)
        return {
            "entries": await ctx.cache.size(),
            **ctx.coordinator.get_stats(),
        }

    @app.delete("/cache")
    async def clear_cache(request: Request):
        """Clear all cached entries."""
        await _context(request).cache.clear()
        return {"status": "cleared"}

    @app.delete("/cache/{key}")
    async def invalidate_cache_key(key: str, request: Request):
        """Invalidate one cached entry."""
        await _context(request).coordinator.invalidate(key)
        return {"status": "invalidated", "key": key}

    @app.get("/posts")
    async def get_posts(
        request: Request,
        page: int = Query(default=1, ge=1),
        pageSize: Optional[int] = Query(default=None, ge=1),
        forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    ):
        """
        Get one page of posts.

        Returns items, hasMore, and cache metadata.
        """
        ctx = _context(request)
        size = min(pageSize or ctx.settings.default_page_size, ctx.settings.max_page_size)
        fetch_page = ctx.api.page_fetcher("posts")

        async def fetch():
            result = await fetch_page(page, size)
            return result.to_dict()

        try:
            result = await _read(ctx, page_cache_key(f"posts-{size}", page), fetch, forceRefresh)
        except FetchFailure as e:
            raise HTTPException(status_code=502, detail=str(e))

        paged = PagedResult.coerce(result.data, size, page)
        return {
            "page": page,
            "pageSize": size,
            "items": list(paged.items),
            "hasMore": paged.has_more,
            "cacheMeta": result.meta(ctx.cache.now()).to_dict(),
        }

    @app.get("/posts/batch")
    async def get_posts_batch(
        request: Request,
        ids: List[int] = Query(..., description="Post IDs to fetch"),
    ):
        """
        Get several posts at once with bounded upstream concurrency.

        Each ID succeeds or fails on its own.
        """
        ctx = _context(request)

        def task_for(post_id: int):
            options = get_options_for_category(get_category_for_resource("posts", {"id": post_id}))

            async def run():
                return await _read(ctx, f"posts-{post_id}", ctx.api.fetcher(f"posts/{post_id}"), options=options)
            return run

        outcomes = await ctx.limiter.run([task_for(post_id) for post_id in ids])
        return {
            "results": [
                {
                    "id": post_id,
                    "data": outcome.value.data if outcome.ok else None,
                    "stale": outcome.value.stale if outcome.ok else None,
                    "error": None if outcome.ok else str(outcome.error),
                }
                for post_id, outcome in zip(ids, outcomes)
            ],
        }


app = create_app()
