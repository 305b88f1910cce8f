"""Loader selection for fetched and local modules.

Precedence (first non-empty answer wins):
1. Caller-supplied override hook (sync or async, may decline with None)
2. File extension of the final URL's path
3. Content-Type header
4. Plain script
"""

from __future__ import annotations

import inspect
import logging
from urllib.parse import urlsplit

from .models import FetchResult
from .models import Loader
from .models import LoaderOverride
from .models import LoaderRequest

logger = logging.getLogger(__name__)

EXT_TO_LOADER: dict[str, Loader] = {
    "js": Loader.JS,
    "mjs": Loader.JS,
    "cjs": Loader.JS,
    "ts": Loader.TS,
    "mts": Loader.TS,
    "cts": Loader.TS,
    "jsx": Loader.JSX,
    "tsx": Loader.TSX,
    "json": Loader.JSON,
    "css": Loader.CSS,
    "txt": Loader.TEXT,
}

CONTENT_TYPE_TO_LOADER: dict[str, Loader] = {
    "application/javascript": Loader.JS,
    "text/javascript": Loader.JS,
    "application/typescript": Loader.TS,
    "text/typescript": Loader.TS,
    "application/json": Loader.JSON,
    "text/json": Loader.JSON,
    "text/css": Loader.CSS,
    "text/plain": Loader.TEXT,
}

DEFAULT_LOADER = Loader.JS


def loader_from_pathname(pathname: str) -> Loader | None:
    """Infer a loader from the extension of the last path segment.

    "/lib/mod.TS" -> ts, "/lib/mod" -> None, "/.env" -> None.
    """
    last = pathname.replace("\\", "/").rsplit("/", 1)[-1]
    dot = last.rfind(".")
    if dot <= 0:
        return None
    return EXT_TO_LOADER.get(last[dot + 1 :].lower())


def loader_from_url(url: str) -> Loader | None:
    """Infer a loader from a URL's path, ignoring query and fragment."""
    return loader_from_pathname(urlsplit(url).path)


def loader_from_content_type(content_type: str | None) -> Loader | None:
    """Map a Content-Type header value to a loader, ignoring parameters."""
    if content_type is None:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_TO_LOADER.get(media_type)


def coerce_loader(value: Loader | str) -> Loader:
    """Convert a loader name to a Loader.

    Raises:
        ValueError: Unknown loader name
    """
    if isinstance(value, Loader):
        return value
    try:
        return Loader(value)
    except ValueError:
        valid = ", ".join(loader.value for loader in Loader)
        raise ValueError(f"Unknown loader {value!r} (expected one of: {valid})") from None


class LoaderSelector:
    """Chooses the loader for a fetched remote module."""

    def __init__(self, override: LoaderOverride | None = None):
        self.override = override

    async def select(self, request: LoaderRequest, result: FetchResult) -> Loader:
        """Run the precedence chain for one fetched module.

        Args:
            request: Path, namespace and import attributes of the module
            result: Completed fetch for the module

        Returns:
            Loader to apply
        """
        if self.override is not None:
            answer = self.override(request, result)
            if inspect.isawaitable(answer):
                answer = await answer
            if answer is not None:
                loader = coerce_loader(answer)
                logger.debug(f"[importmap:load] {request.path} loader {loader.value} (override)")
                return loader

        loader = loader_from_url(result.final_url or request.path)
        if loader is not None:
            return loader

        loader = loader_from_content_type(result.content_type)
        if loader is not None:
            return loader

        return DEFAULT_LOADER
