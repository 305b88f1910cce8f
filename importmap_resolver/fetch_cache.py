"""Per-build cache of remote module fetches.

Every requested URL is fetched at most once per build. The first caller
claims the URL and starts the fetch; every later caller, including ones
racing before the first completes, awaits the same task.

Redirects are followed one hop at a time and every hop goes through the
cache, so two requests that end at the same URL share its fetch.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from .errors import FetchError
from .errors import FetchStatusError
from .errors import FetchTimeoutError
from .models import FetchResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
MAX_REDIRECTS = 20


class RemoteFetchCache:
    """Deduplicating HTTP(S) fetcher scoped to one build."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, client: httpx.AsyncClient | None = None):
        """Initialize the cache.

        Args:
            timeout_ms: Per-fetch timeout in milliseconds
            client: HTTP client to use. When None, one is created on first use
                and closed by aclose().
        """
        self.timeout_ms = timeout_ms
        self._client = client
        self._owns_client = client is None
        self._tasks: dict[str, asyncio.Task[FetchResult]] = {}
        self._resolved_urls: dict[str, str] = {}
        self._redirects: dict[str, str] = {}
        self._redirect_depth: dict[str, int] = {}
        self._network_fetches = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_ms / 1000)
        return self._client

    def claim(self, url: str) -> asyncio.Task[FetchResult]:
        """Return the fetch task for a URL, starting it if nobody has yet.

        There is no await between the lookup and the insert, so concurrent
        callers on the event loop always agree on a single task.
        """
        task = self._tasks.get(url)
        if task is None:
            logger.debug(f"[importmap:fetch] claim {url}")
            task = asyncio.ensure_future(self._fetch(url))
            task.add_done_callback(_consume_exception)
            self._tasks[url] = task
        return task

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a URL, sharing the network request with other callers.

        Raises:
            FetchStatusError: Non-success status
            FetchTimeoutError: Timeout elapsed
            FetchError: Any other transport failure
        """
        return await asyncio.shield(self.claim(url))

    def resolved_url(self, url: str) -> str | None:
        """Final URL recorded for a requested URL, if its fetch completed."""
        return self._resolved_urls.get(url)

    async def wait_resolved_url(self, url: str) -> str | None:
        """Final URL for a requested URL, waiting on an in-flight fetch first."""
        task = self._tasks.get(url)
        if task is not None and not task.done():
            await asyncio.shield(task)
        return self._resolved_urls.get(url)

    def __contains__(self, url: object) -> bool:
        return url in self._tasks

    def stats(self) -> dict[str, int]:
        """Counters for diagnostics."""
        return {
            "urls": len(self._tasks),
            "network_fetches": self._network_fetches,
            "redirected": sum(1 for url, final in self._resolved_urls.items() if url != final),
        }

    async def aclose(self) -> None:
        """Cancel unfinished fetches and close the HTTP client if this cache created it."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _fetch(self, url: str) -> FetchResult:
        self._network_fetches += 1
        logger.debug(f"[importmap:fetch] GET {url}")
        try:
            response = await asyncio.wait_for(
                self.client.get(url, follow_redirects=False),
                timeout=self.timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise FetchTimeoutError(url, self.timeout_ms) from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"GET {url} failed: {type(e).__name__}: {e}") from e

        if response.next_request is not None:
            return await self._follow(url, str(response.next_request.url))

        if not response.is_success:
            raise FetchStatusError(url, response.status_code)

        self._resolved_urls[url] = url
        return FetchResult(
            url=url,
            final_url=url,
            status_code=response.status_code,
            headers=response.headers,
            content=response.content,
        )

    async def _follow(self, url: str, location: str) -> FetchResult:
        """Fetch a redirect target through the cache.

        The hop is claimed like any other URL, so a request for the target
        that is already in flight is joined rather than repeated.
        """
        depth = self._redirect_depth.get(url, 0) + 1
        if depth > MAX_REDIRECTS:
            raise FetchError(url, f"GET {url} failed: more than {MAX_REDIRECTS} redirects")

        self._redirects[url] = location
        hop, seen = location, set()
        while hop in self._redirects and hop not in seen:
            if hop == url:
                raise FetchError(url, f"GET {url} failed: redirect loop via {location}")
            seen.add(hop)
            hop = self._redirects[hop]
        self._redirect_depth.setdefault(location, depth)

        logger.debug(f"[importmap:fetch] {url} redirected to {location}")
        target = await asyncio.shield(self.claim(location))

        self._resolved_urls[url] = target.final_url
        return FetchResult(
            url=url,
            final_url=target.final_url,
            status_code=target.status_code,
            headers=target.headers,
            content=target.content,
        )


def _consume_exception(task: asyncio.Task) -> None:
    # Awaiting callers still see the exception; mark it retrieved for unawaited claims.
    if not task.cancelled():
        task.exception()
