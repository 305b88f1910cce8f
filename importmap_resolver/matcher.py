"""Bare specifier matching against an import map.

Exact keys denote a full replacement and always win. Prefix keys end in "/"
and rewrite every specifier that starts with them; the longest key wins.
"""

import logging
import re
from collections.abc import Mapping

from .errors import ConfigurationError
from .models import MatchResult

logger = logging.getLogger(__name__)

BARE_SPECIFIER = re.compile(r"^[a-zA-Z0-9@][a-zA-Z0-9\-._@/]*$")


def is_bare_specifier(specifier: str) -> bool:
    """Return True for specifiers like "pkg", "pkg/sub.js" or "@scope/pkg".

    Relative ("./x", "../x"), absolute ("/x") and scheme-qualified
    ("https://...", "node:fs") specifiers are not bare.
    """
    return bool(BARE_SPECIFIER.match(specifier))


def validate_import_map(imports: Mapping[str, str]) -> None:
    """Check that every prefix key maps to a target ending in "/".

    Raises:
        ConfigurationError: A prefix key has a target without trailing "/"
    """
    for key, target in imports.items():
        if not isinstance(target, str):
            raise ConfigurationError(f"Import map entry {key!r} must map to a string, got {type(target).__name__}")
        if key.endswith("/") and not target.endswith("/"):
            raise ConfigurationError(
                f"Invalid import map entry {key!r}: prefix keys must map to a target ending in '/', "
                f"got {target!r}"
            )


class SpecifierMatcher:
    """Matches bare specifiers against a validated import map."""

    def __init__(self, imports: Mapping[str, str] | None = None):
        """Validate the map and index its prefix keys.

        Args:
            imports: Specifier key -> target table

        Raises:
            ConfigurationError: The map is malformed
        """
        imports = dict(imports or {})
        validate_import_map(imports)

        self.imports = imports
        self.prefix_keys = sorted((k for k in imports if k.endswith("/")), key=len, reverse=True)

    def match(self, specifier: str) -> MatchResult | None:
        """Rewrite a bare specifier through the import map.

        Args:
            specifier: Specifier as written in the importing module

        Returns:
            MatchResult for an exact or prefix hit, None when nothing applies
        """
        if not is_bare_specifier(specifier):
            return None

        if specifier in self.imports:
            target = self.imports[specifier]
            logger.debug(f"[importmap:match] exact {specifier} -> {target}")
            return MatchResult(kind="exact", key=specifier, target=target)

        for key in self.prefix_keys:
            if specifier.startswith(key):
                target = self.imports[key] + specifier[len(key) :]
                logger.debug(f"[importmap:match] prefix [{key}] {specifier} -> {target}")
                return MatchResult(kind="prefix", key=key, target=target)

        return None

    @property
    def exact_keys(self) -> list[str]:
        return sorted(k for k in self.imports if not k.endswith("/"))

    def __len__(self) -> int:
        return len(self.imports)

    def __repr__(self) -> str:
        return f"SpecifierMatcher({len(self.imports)} entries, {len(self.prefix_keys)} prefixes)"
