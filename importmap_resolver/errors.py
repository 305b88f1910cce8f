"""Error types raised while resolving and fetching mapped imports.

Taxonomy:
- ConfigurationError: malformed import map or settings (fails at setup)
- PolicyError: remote target met while HTTP(S) imports are disabled
- FetchError: a remote module could not be fetched
  - FetchStatusError: non-success HTTP status
  - FetchTimeoutError: timeout elapsed, request was cancelled
- BuildError / UnresolvedImportError: raised by the reference host
"""

from __future__ import annotations


class ImportMapError(Exception):
    """Base class for every error raised by importmap_resolver."""


class ConfigurationError(ImportMapError):
    """Import map or settings are malformed."""


class PolicyError(ImportMapError):
    """A specifier maps to a remote URL but HTTP(S) imports are disabled."""

    def __init__(self, target: str, specifier: str | None = None):
        self.target = target
        self.specifier = specifier
        mapped = f"specifier {specifier!r}" if specifier else "specifier"
        super().__init__(
            f"importmap-resolver: HTTP(S) imports are disabled. "
            f"Tried to map {mapped} to {target} without enable_http=True."
        )


class FetchError(ImportMapError):
    """A remote module could not be fetched."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class FetchStatusError(FetchError):
    """The server answered with a non-success status."""

    def __init__(self, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(url, f"GET {url} failed: status {status_code}")


class FetchTimeoutError(FetchError):
    """The fetch did not complete within the configured timeout."""

    def __init__(self, url: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(url, f"GET {url} aborted: timed out after {timeout_ms} ms")


class BuildError(ImportMapError):
    """The reference host failed to build the module graph."""

    def __init__(self, message: str, importer: str | None = None):
        self.importer = importer
        super().__init__(message)


class UnresolvedImportError(BuildError):
    """No plugin and no default resolution handled a specifier."""

    def __init__(self, specifier: str, importer: str | None = None):
        self.specifier = specifier
        super().__init__(f'Could not resolve "{specifier}"', importer=importer)
