"""CLI commands."""

from .build import build_cmd
from .resolve import check_cmd
from .resolve import resolve_cmd

__all__ = ["build_cmd", "check_cmd", "resolve_cmd"]
