"""Configuration for the import map resolver.

Sources, highest priority first:
1. Explicit arguments (CLI flags)
2. Environment variables (IMPORTMAP_ENABLE_HTTP, IMPORTMAP_TIMEOUT_MS, IMPORTMAP_BASE_DIR)
3. Project settings (.importmap/settings.yaml)
4. Defaults
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from .errors import ConfigurationError
from .fetch_cache import DEFAULT_TIMEOUT_MS
from .matcher import validate_import_map
from .models import LoaderOverride
from .models import LogSink

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(".importmap") / "settings.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ImportMap(BaseModel):
    """Import map document ({"imports": {...}})."""

    imports: dict[str, str] = Field(default_factory=dict, description="Specifier key -> target")

    def validate_prefixes(self) -> None:
        """Raise ConfigurationError when a prefix key's target lacks a trailing "/"."""
        validate_import_map(self.imports)


class ImportMapOptions(BaseModel):
    """Options accepted by ImportMapPlugin."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    import_map: ImportMap = Field(default_factory=ImportMap)
    base_dir: str | None = Field(None, description="Anchor for relative local targets")
    enable_http: bool = Field(default=False, description="Allow http(s) targets")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Per-fetch timeout")
    loader_resolver: LoaderOverride | None = Field(None, description="Loader override hook")
    on_log: LogSink | None = Field(None, description="Diagnostic message sink")
    http_client: httpx.AsyncClient | None = Field(None, description="HTTP client to fetch with")


class Settings(BaseModel):
    """Contents of a settings.yaml file."""

    import_map: str | None = Field(None, description="Path to an import map JSON file")
    imports: dict[str, str] = Field(default_factory=dict, description="Inline import map entries")
    base_dir: str | None = None
    enable_http: bool | None = None
    timeout_ms: int | None = Field(None, gt=0)


def build_options(**kwargs: Any) -> ImportMapOptions:
    """Construct ImportMapOptions, reporting bad values as ConfigurationError.

    Raises:
        ConfigurationError: A value fails validation (e.g. timeout_ms <= 0)
    """
    try:
        return ImportMapOptions(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid options: {e}") from e


def load_import_map(path: str | Path) -> ImportMap:
    """Read an import map JSON file.

    Raises:
        ConfigurationError: File missing, not JSON, or not an import map
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Import map not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Import map {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Import map {path} must be a JSON object")

    unsupported = sorted(set(data) - {"imports"})
    if unsupported:
        logger.warning(f"Ignoring unsupported import map fields in {path}: {', '.join(unsupported)}")

    try:
        return ImportMap(imports=data.get("imports") or {})
    except ValidationError as e:
        raise ConfigurationError(f"Import map {path} is malformed: {e}") from e


def load_settings(path: str | Path | None = None) -> Settings:
    """Read a settings.yaml file, returning defaults when it does not exist.

    Relative paths inside the file (import_map, base_dir) are anchored at the
    directory containing the project's .importmap folder.

    Raises:
        ConfigurationError: File is not valid YAML or has invalid values
    """
    explicit = path is not None
    path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH

    if not path.exists():
        if explicit:
            raise ConfigurationError(f"Settings file not found: {path}")
        return Settings()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Settings file {path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")

    try:
        settings = Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Settings file {path} is invalid: {e}") from e

    root = path.resolve().parent
    if root.name == ".importmap":
        root = root.parent
    if settings.import_map and not os.path.isabs(settings.import_map):
        settings.import_map = str(root / settings.import_map)
    if settings.base_dir and not os.path.isabs(settings.base_dir):
        settings.base_dir = str(root / settings.base_dir)

    logger.debug(f"Loaded settings from {path}")
    return settings


def _env_bool(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def resolve_options(
    settings_path: str | Path | None = None,
    import_map_path: str | Path | None = None,
    base_dir: str | None = None,
    enable_http: bool | None = None,
    timeout_ms: int | None = None,
    **extra: Any,
) -> ImportMapOptions:
    """Merge arguments, environment and settings into plugin options.

    Args:
        settings_path: settings.yaml to read (default: .importmap/settings.yaml if present)
        import_map_path: Import map JSON file, overriding the settings' import_map
        base_dir: Explicit base directory
        enable_http: Explicit HTTP(S) switch
        timeout_ms: Explicit fetch timeout
        **extra: Passed through to ImportMapOptions (loader_resolver, on_log, http_client)

    Returns:
        Validated ImportMapOptions

    Raises:
        ConfigurationError: Any source is malformed
    """
    settings = load_settings(settings_path)

    imports: dict[str, str] = {}
    map_path = import_map_path or settings.import_map
    if map_path:
        imports.update(load_import_map(map_path).imports)
    if import_map_path is None:
        imports.update(settings.imports)

    def first(*values):
        return next((v for v in values if v is not None), None)

    merged = {
        "base_dir": first(base_dir, os.environ.get("IMPORTMAP_BASE_DIR") or None, settings.base_dir),
        "enable_http": first(enable_http, _env_bool("IMPORTMAP_ENABLE_HTTP"), settings.enable_http, False),
        "timeout_ms": first(timeout_ms, _env_int("IMPORTMAP_TIMEOUT_MS"), settings.timeout_ms, DEFAULT_TIMEOUT_MS),
    }

    import_map = ImportMap(imports=imports)
    import_map.validate_prefixes()

    return build_options(import_map=import_map, **merged, **extra)
