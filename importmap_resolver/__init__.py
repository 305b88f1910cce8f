"""Browser-style import maps for an esbuild-style build host.

Core components:
- matcher: exact / longest-prefix matching of bare specifiers
- targets: local path vs. remote URL resolution, HTTP opt-in policy
- fetch_cache: deduplicated HTTP(S) fetches with timeouts
- loaders: loader selection (override -> extension -> content-type -> js)
- remote_resolver: relative imports inside remote modules
- plugin: wires the above into the host's resolve/load hooks
"""

__version__ = "0.1.0"

from .config import ImportMap
from .config import ImportMapOptions
from .errors import BuildError
from .errors import ConfigurationError
from .errors import FetchError
from .errors import FetchStatusError
from .errors import FetchTimeoutError
from .errors import ImportMapError
from .errors import PolicyError
from .errors import UnresolvedImportError
from .fetch_cache import RemoteFetchCache
from .loaders import LoaderSelector
from .matcher import SpecifierMatcher
from .models import Loader
from .plugin import HTTP_NAMESPACE
from .plugin import ImportMapPlugin
from .plugin import import_map_plugin
from .remote_resolver import RemoteRelativeResolver
from .targets import resolve_target

__all__ = [
    "HTTP_NAMESPACE",
    "BuildError",
    "ConfigurationError",
    "FetchError",
    "FetchStatusError",
    "FetchTimeoutError",
    "ImportMap",
    "ImportMapError",
    "ImportMapOptions",
    "ImportMapPlugin",
    "Loader",
    "LoaderSelector",
    "PolicyError",
    "RemoteFetchCache",
    "RemoteRelativeResolver",
    "SpecifierMatcher",
    "UnresolvedImportError",
    "import_map_plugin",
    "resolve_target",
]
