"""Shared Rich consoles for CLI output.

Bundle output goes to stdout; tables, progress and errors go to stderr so
`importmap build entry.js > out.js` stays clean.
"""

from rich.console import Console

console = Console(stderr=True)

__all__ = ["console"]
