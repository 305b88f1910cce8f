"""Value types shared between the resolver core and its host.

Defines:
- Loader: content kinds a host knows how to parse
- MatchResult: outcome of matching a bare specifier against the import map
- LocalPath / RemoteRef: resolved targets
- FetchResult: a completed remote fetch
- ResolveArgs / ResolveResult / LoadArgs / LoadResult: host hook payloads
- LoaderRequest: what a loader override hook is told about a module
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Literal

import httpx


class Loader(str, Enum):
    """Kind of parser a host applies to module contents."""

    JS = "js"
    TS = "ts"
    JSX = "jsx"
    TSX = "tsx"
    JSON = "json"
    CSS = "css"
    TEXT = "text"

    @property
    def is_script(self) -> bool:
        """Whether contents of this kind can contain import statements."""
        return self in (Loader.JS, Loader.TS, Loader.JSX, Loader.TSX)


@dataclass(frozen=True)
class MatchResult:
    """A bare specifier rewritten by the import map.

    Attributes:
        kind: "exact" or "prefix"
        key: Import map key that matched
        target: Replacement string (prefix target plus the remainder)
    """

    kind: Literal["exact", "prefix"]
    key: str
    target: str


@dataclass(frozen=True)
class LocalPath:
    """Target that lives on the local filesystem."""

    path: str


@dataclass(frozen=True)
class RemoteRef:
    """Target that must be fetched over HTTP(S)."""

    url: str


ResolvedTarget = LocalPath | RemoteRef


@dataclass
class FetchResult:
    """A completed remote fetch.

    Attributes:
        url: URL as requested
        final_url: URL reached after following redirects
        status_code: HTTP status of the final response
        headers: Response headers of the final response
        content: Raw body bytes
    """

    url: str
    final_url: str
    status_code: int
    headers: httpx.Headers
    content: bytes

    @property
    def redirected(self) -> bool:
        return self.final_url != self.url

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


@dataclass
class ResolveArgs:
    """Payload of a host resolve call."""

    path: str
    importer: str = ""
    namespace: str = "file"
    resolve_dir: str | None = None
    with_: dict[str, str] = field(default_factory=dict)


@dataclass
class ResolveResult:
    """Answer to a resolve call: a path, tagged with the namespace that owns it."""

    path: str
    namespace: str = "file"


@dataclass
class LoadArgs:
    """Payload of a host load call."""

    path: str
    namespace: str = "file"
    with_: dict[str, str] = field(default_factory=dict)


@dataclass
class LoadResult:
    """Module contents plus the loader that should parse them."""

    contents: bytes
    loader: Loader


@dataclass(frozen=True)
class LoaderRequest:
    """What a loader override hook learns about the module being loaded."""

    path: str
    namespace: str
    with_: dict[str, str] = field(default_factory=dict)


LoaderOverrideResult = Loader | str | None
LoaderOverride = Callable[[LoaderRequest, FetchResult], LoaderOverrideResult | Awaitable[LoaderOverrideResult]]
LogSink = Callable[[str], Any]
