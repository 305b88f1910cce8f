"""Relative imports found inside fetched remote modules."""

import logging
import re

import httpx

from .fetch_cache import RemoteFetchCache

logger = logging.getLogger(__name__)

RELATIVE_SPECIFIER = re.compile(r"^\.\.?/")


def is_relative_specifier(specifier: str) -> bool:
    return bool(RELATIVE_SPECIFIER.match(specifier))


class RemoteRelativeResolver:
    """Resolves "./x" and "../x" against the importing module's final URL.

    The importer is identified by the URL it was requested under; when that
    request was redirected, the redirect target anchors the relative path.
    """

    def __init__(self, cache: RemoteFetchCache):
        self.cache = cache

    async def resolve(self, specifier: str, importer: str) -> str:
        """Join a relative specifier onto its importer.

        Waits for the importer's fetch when it is still in flight, since its
        final URL is not known before then.

        Args:
            specifier: Relative specifier ("./b.js", "../lib/c.js")
            importer: Requested URL of the importing remote module

        Returns:
            Absolute URL of the imported module
        """
        base = await self.cache.wait_resolved_url(importer) or importer
        url = str(httpx.URL(base).join(specifier))
        logger.debug(f"[importmap:resolve] {specifier} (from {importer}) -> {url}")
        return url
