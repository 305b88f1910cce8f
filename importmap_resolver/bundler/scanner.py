"""Static import discovery for script modules."""

import re

IMPORT_SPEC_RE = re.compile(
    r"""(?P<kind>\bimport\b|\bexport\b)\s+[^'";]*?\bfrom\b\s*['"](?P<spec>[^'"]+)['"]\s*;?|
        (?P<side>\bimport\b)\s*['"](?P<spec2>[^'"]+)['"]\s*;?|
        \bimport\s*\(\s*['"](?P<spec3>[^'"]+)['"]\s*\)
    """,
    re.VERBOSE,
)

# Strings are matched alongside comments so "//" inside a URL literal survives.
_COMMENT_OR_STRING_RE = re.compile(
    r"""("(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*')|//[^\n]*|/\*.*?\*/""",
    re.DOTALL,
)


def strip_comments(text: str) -> str:
    return _COMMENT_OR_STRING_RE.sub(lambda m: m.group(1) or "", text)


def scan_imports(source: str) -> list[str]:
    """Return import specifiers in order of first appearance.

    Handles `import x from "a"`, `import "a"`, `export { x } from "a"` and
    `import("a")` with a string literal argument.
    """
    specifiers: list[str] = []
    for m in IMPORT_SPEC_RE.finditer(strip_comments(source)):
        spec = m.group("spec") or m.group("spec2") or m.group("spec3")
        if spec and spec not in specifiers:
            specifiers.append(spec)
    return specifiers
