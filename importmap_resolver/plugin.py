"""Import map plugin for an esbuild-style host bundler.

The plugin hooks the host's specifier resolution:
- Bare specifiers are rewritten through the import map (any namespace)
- Mapped http(s) targets move into the remote namespace
- Relative and absolute URLs inside remote modules stay remote
- Remote modules are fetched once per build and handed back with a loader
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Protocol

from .config import ImportMapOptions
from .config import build_options
from .fetch_cache import RemoteFetchCache
from .loaders import LoaderSelector
from .matcher import BARE_SPECIFIER
from .matcher import SpecifierMatcher
from .models import LoadArgs
from .models import LoaderRequest
from .models import LoadResult
from .models import RemoteRef
from .models import ResolveArgs
from .models import ResolveResult
from .remote_resolver import RELATIVE_SPECIFIER
from .remote_resolver import RemoteRelativeResolver
from .targets import HTTP_URL
from .targets import resolve_target

logger = logging.getLogger(__name__)

PLUGIN_NAME = "import-map"
HTTP_NAMESPACE = "http-url"

ResolveCallback = Callable[[ResolveArgs], Awaitable[ResolveResult | None]]
LoadCallback = Callable[[LoadArgs], Awaitable[LoadResult | None]]


class PluginBuild(Protocol):
    """Host surface the plugin registers itself on."""

    initial_options: Any

    def on_resolve(self, filter: re.Pattern[str], callback: ResolveCallback, namespace: str | None = None) -> None: ...

    def on_load(self, filter: re.Pattern[str], callback: LoadCallback, namespace: str | None = None) -> None: ...

    def on_end(self, callback: Callable[[], Awaitable[None]]) -> None: ...


class ImportMapPlugin:
    """Applies browser-style import maps during a build.

    The import map is validated when the plugin is created, before any
    module is processed. Each setup() call starts a fresh fetch cache, so
    fetched modules are shared within one build and never across builds.
    """

    name = PLUGIN_NAME

    def __init__(self, options: ImportMapOptions | None = None):
        """Initialize plugin.

        Args:
            options: Plugin options (default: empty import map, HTTP disabled)

        Raises:
            ConfigurationError: Import map is malformed
        """
        self.options = options or ImportMapOptions()
        self.matcher = SpecifierMatcher(self.options.import_map.imports)
        self.loader_selector = LoaderSelector(self.options.loader_resolver)
        self.base_dir: str | None = None
        self.fetch_cache: RemoteFetchCache | None = None
        self.relative_resolver: RemoteRelativeResolver | None = None

    def setup(self, build: PluginBuild) -> None:
        """Register resolve/load hooks on the host build."""
        working_dir = getattr(build.initial_options, "abs_working_dir", None)
        self.base_dir = self.options.base_dir or working_dir or os.getcwd()
        self.fetch_cache = RemoteFetchCache(self.options.timeout_ms, client=self.options.http_client)
        self.relative_resolver = RemoteRelativeResolver(self.fetch_cache)

        build.on_resolve(BARE_SPECIFIER, self.resolve_bare)
        build.on_resolve(HTTP_URL, self.resolve_url, namespace=HTTP_NAMESPACE)
        build.on_resolve(RELATIVE_SPECIFIER, self.resolve_relative, namespace=HTTP_NAMESPACE)
        build.on_load(re.compile(".*"), self.load_remote, namespace=HTTP_NAMESPACE)
        build.on_end(self.fetch_cache.aclose)

        self._log(f"Base directory: {self.base_dir}")

    async def resolve_bare(self, args: ResolveArgs) -> ResolveResult | None:
        """Rewrite a bare specifier, or decline so the host resolves it."""
        match = self.matcher.match(args.path)
        if match is None:
            return None

        self._log(f"{match.kind.capitalize()} match: [{match.key}] {args.path} -> {match.target}")
        target = resolve_target(match.target, self._require_base_dir(), self.options.enable_http, args.path)
        if isinstance(target, RemoteRef):
            return ResolveResult(path=target.url, namespace=HTTP_NAMESPACE)
        return ResolveResult(path=target.path)

    async def resolve_url(self, args: ResolveArgs) -> ResolveResult:
        """Keep an absolute http(s) import inside a remote module remote."""
        self._log(f"HTTP entry resolve: {args.path}")
        return ResolveResult(path=args.path, namespace=HTTP_NAMESPACE)

    async def resolve_relative(self, args: ResolveArgs) -> ResolveResult:
        """Resolve "./x" or "../x" inside a remote module against its final URL."""
        if self.relative_resolver is None:
            raise RuntimeError("ImportMapPlugin.setup() has not been called")
        url = await self.relative_resolver.resolve(args.path, args.importer)
        self._log(f"Resolved: {args.path} -> {url}")
        return ResolveResult(path=url, namespace=HTTP_NAMESPACE)

    async def load_remote(self, args: LoadArgs) -> LoadResult:
        """Fetch a remote module and pick its loader."""
        if self.fetch_cache is None:
            raise RuntimeError("ImportMapPlugin.setup() has not been called")
        self._log(f"Downloading: {args.path}")
        result = await self.fetch_cache.fetch(args.path)

        request = LoaderRequest(path=args.path, namespace=args.namespace, with_=dict(args.with_))
        loader = await self.loader_selector.select(request, result)
        self._log(f"Loaded: {args.path} ({len(result.content)} bytes, loader {loader.value})")
        return LoadResult(contents=result.content, loader=loader)

    def _require_base_dir(self) -> str:
        if self.base_dir is None:
            raise RuntimeError("ImportMapPlugin.setup() has not been called")
        return self.base_dir

    def _log(self, message: str) -> None:
        logger.debug(f"[importmap:plugin] {message}")
        if self.options.on_log is not None:
            self.options.on_log(message)

    def __repr__(self) -> str:
        return f"ImportMapPlugin({self.matcher!r}, enable_http={self.options.enable_http})"


def import_map_plugin(**kwargs: Any) -> ImportMapPlugin:
    """Create an ImportMapPlugin from keyword options.

    Example:
        import_map_plugin(import_map={"imports": {"pkg": "./src/pkg.js"}}, enable_http=True)

    Raises:
        ConfigurationError: An option value or the import map is invalid
    """
    return ImportMapPlugin(build_options(**kwargs))
