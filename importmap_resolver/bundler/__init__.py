"""Reference build host used by the CLI and integration tests."""

from .host import Build
from .host import BuildOptions
from .host import BuildResult
from .host import Module
from .host import build
from .scanner import scan_imports

__all__ = [
    "Build",
    "BuildOptions",
    "BuildResult",
    "Module",
    "build",
    "scan_imports",
]
