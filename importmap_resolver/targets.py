"""Turn an import map replacement string into a resolved target."""

import logging
import os
import re

from .errors import PolicyError
from .models import LocalPath
from .models import RemoteRef
from .models import ResolvedTarget

logger = logging.getLogger(__name__)

HTTP_URL = re.compile(r"^https?://")


def is_http_url(value: str) -> bool:
    return bool(HTTP_URL.match(value))


def resolve_target(
    target: str,
    base_dir: str | os.PathLike[str],
    enable_http: bool,
    specifier: str | None = None,
) -> ResolvedTarget:
    """Resolve a replacement string to a local path or a remote reference.

    No existence check is made; a missing file surfaces when the host loads it.

    Args:
        target: Replacement string produced by the matcher
        base_dir: Absolute directory that anchors relative targets
        enable_http: Whether remote targets are allowed
        specifier: Original specifier (for error messages)

    Returns:
        RemoteRef for http(s) targets, LocalPath otherwise

    Raises:
        PolicyError: Target is remote and enable_http is False
    """
    if is_http_url(target):
        if not enable_http:
            raise PolicyError(target, specifier)
        return RemoteRef(url=target)

    if os.path.isabs(target):
        return LocalPath(path=target)

    path = os.path.normpath(os.path.join(os.fspath(base_dir), target))
    logger.debug(f"[importmap:target] {target} -> {path} (base {base_dir})")
    return LocalPath(path=path)
