"""
HTTP fetch functions for the freshness layer.

Builds the opaque async fetch callables the coordinator and the pagination
engine consume. Requests run in a worker thread with a timeout and retry
with exponential backoff.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import requests
from dotenv import load_dotenv

from config.settings import Settings
from freshness.errors import FetchFailure
from freshness.pagination.models import PagedResult
from freshness.utils.retry import RetryConfig, retry_async

load_dotenv()

logger = logging.getLogger("api_client")


def _cache_key(endpoint: str, params: Optional[dict] = None) -> str:
    """Generate cache key from endpoint and params."""
    sorted_params = sorted((k, v) for k, v in (params or {}).items() if v is not None)
    if not sorted_params:
        return endpoint
    return f"{endpoint}:{sorted_params}"


class ApiClient:
    """
    JSON-over-HTTP client producing fetch functions.

    Usage:
        client = ApiClient("https://api.example.com")
        fetch_posts = client.page_fetcher("posts")
        engine = PaginationEngine(fetch_posts, page_size=20)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry or RetryConfig(retry_on=(requests.RequestException,))
        self._session = session or requests.Session()
        self._headers = headers or {"Accept": "application/json"}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ApiClient":
        return cls(
            settings.api_base_url,
            timeout=settings.request_timeout_seconds,
            retry=RetryConfig(
                max_retries=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
                retry_on=(requests.RequestException,),
            ),
        )

    def _request(self, endpoint: str, params: Optional[dict]) -> Any:
        response = self._session.get(
            f"{self.base_url}/{endpoint.lstrip('/')}",
            headers=self._headers,
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """
        GET ``endpoint`` and decode the JSON body.

        Raises:
            FetchFailure: The request failed after all retries
        """
        key = _cache_key(endpoint, params)
        try:
            return await retry_async(
                lambda: asyncio.to_thread(self._request, endpoint, params),
                self.retry,
            )
        except requests.RequestException as e:
            logger.error(f"Request failed for {key}: {e}")
            raise FetchFailure(f"Request failed for {key}: {e}", key=key, cause=e) from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {key}: {e}")
            raise FetchFailure(f"Invalid JSON from {key}: {e}", key=key, cause=e) from e

    def fetcher(self, endpoint: str, params: Optional[dict] = None) -> Callable[[], Awaitable[Any]]:
        """Zero-argument fetch function for ``endpoint``."""

        async def fetch() -> Any:
            return await self.get_json(endpoint, params)

        return fetch

    def page_fetcher(
        self,
        endpoint: str,
        page_param: str = "_page",
        size_param: str = "_limit",
        params: Optional[dict] = None,
    ) -> Callable[[int, int], Awaitable[PagedResult[Any]]]:
        """
        Paged fetch function for ``endpoint``.

        The response may be a bare list or an object carrying ``data`` and
        ``hasMore``; without ``hasMore`` a short page ends the list.
        """

        async def fetch_page(page: int, page_size: int) -> PagedResult[Any]:
            query = dict(params or {})
            query[page_param] = page
            query[size_param] = page_size
            raw = await self.get_json(endpoint, query)
            return PagedResult.coerce(raw, page_size, page)

        return fetch_page

    def close(self) -> None:
        self._session.close()
