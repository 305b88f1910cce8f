"""Minimal asyncio build host.

Implements the hook surface an esbuild-style plugin expects (on_resolve,
on_load, on_end), walks the module graph from the entry points and
concatenates module contents in dependency order. Dependencies of a module
are resolved concurrently, so plugins see the same racing resolve and load
calls a parallel bundler would issue.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Callable

from ..errors import BuildError
from ..errors import UnresolvedImportError
from ..loaders import DEFAULT_LOADER
from ..loaders import loader_from_pathname
from ..models import LoadArgs
from ..models import Loader
from ..models import LoadResult
from ..models import ResolveArgs
from ..models import ResolveResult
from .scanner import scan_imports

logger = logging.getLogger(__name__)

FILE_NAMESPACE = "file"
RESOLVE_EXTENSIONS = (".js", ".mjs", ".ts", ".tsx", ".jsx", ".json", ".css")

ModuleKey = tuple[str, str]


@dataclass
class BuildOptions:
    """Options visible to plugins as build.initial_options."""

    entry_points: list[str]
    abs_working_dir: str | None = None


@dataclass
class _Hook:
    filter: re.Pattern[str]
    callback: Callable[..., Any]
    namespace: str | None

    def applies(self, value: str, namespace: str) -> bool:
        if self.namespace is not None and self.namespace != namespace:
            return False
        return bool(self.filter.search(value))


@dataclass
class Module:
    """A loaded module in the graph."""

    path: str
    namespace: str
    loader: Loader
    contents: bytes
    imports: dict[str, ModuleKey] = field(default_factory=dict)

    @property
    def key(self) -> ModuleKey:
        return (self.namespace, self.path)

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8", errors="replace")


@dataclass
class BuildResult:
    """Modules of a finished build, dependencies before dependents."""

    modules: list[Module]

    @property
    def output_text(self) -> str:
        parts = []
        for module in self.modules:
            parts.append(f"// {module.namespace}:{module.path}\n{module.text.rstrip()}\n")
        return "\n".join(parts)

    def get(self, path: str, namespace: str = FILE_NAMESPACE) -> Module | None:
        return next((m for m in self.modules if m.path == path and m.namespace == namespace), None)


async def _call(callback: Callable[..., Any], *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Build:
    """One build invocation: plugins are set up fresh for every run()."""

    def __init__(
        self,
        entry_points: list[str],
        plugins: list[Any] | tuple[Any, ...] = (),
        abs_working_dir: str | None = None,
    ):
        self.initial_options = BuildOptions(entry_points=list(entry_points), abs_working_dir=abs_working_dir)
        self.plugins = list(plugins)
        self._resolve_hooks: list[_Hook] = []
        self._load_hooks: list[_Hook] = []
        self._end_callbacks: list[Callable[[], Any]] = []
        self._tasks: dict[ModuleKey, asyncio.Task[None]] = {}
        self._modules: dict[ModuleKey, Module] = {}

    # Hook registration (plugin surface)

    def on_resolve(self, filter: re.Pattern[str] | str, callback: Callable[..., Any], namespace: str | None = None):
        self._resolve_hooks.append(_Hook(re.compile(filter), callback, namespace))

    def on_load(self, filter: re.Pattern[str] | str, callback: Callable[..., Any], namespace: str | None = None):
        self._load_hooks.append(_Hook(re.compile(filter), callback, namespace))

    def on_end(self, callback: Callable[[], Any]) -> None:
        self._end_callbacks.append(callback)

    # Build

    async def run(self) -> BuildResult:
        """Build the module graph.

        Raises:
            BuildError: A specifier could not be resolved or a module failed to load
        """
        self._resolve_hooks.clear()
        self._load_hooks.clear()
        self._end_callbacks.clear()
        self._tasks.clear()
        self._modules.clear()

        for plugin in self.plugins:
            logger.debug(f"Setting up plugin {getattr(plugin, 'name', plugin)!r}")
            plugin.setup(self)

        try:
            working_dir = self.initial_options.abs_working_dir or os.getcwd()
            entries = []
            for entry in self.initial_options.entry_points:
                path = self._resolve_file(os.path.join(working_dir, entry))
                if path is None:
                    raise UnresolvedImportError(entry)
                entries.append((FILE_NAMESPACE, path))
                self._schedule((FILE_NAMESPACE, path))

            await self._drain()
            return BuildResult(modules=self._ordered(entries))
        finally:
            for callback in self._end_callbacks:
                await _call(callback)

    async def _drain(self) -> None:
        while pending := [t for t in self._tasks.values() if not t.done()]:
            try:
                await asyncio.gather(*pending)
            except BaseException:
                tasks = list(self._tasks.values())
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

    def _schedule(self, key: ModuleKey) -> None:
        if key not in self._tasks:
            self._tasks[key] = asyncio.ensure_future(self._process(key))

    async def _process(self, key: ModuleKey) -> None:
        namespace, path = key
        loaded = await self._load(path, namespace)
        module = Module(path=path, namespace=namespace, loader=loaded.loader, contents=loaded.contents)
        self._modules[key] = module

        if not module.loader.is_script:
            return

        specifiers = scan_imports(module.text)
        results = await asyncio.gather(*(self._resolve(spec, module) for spec in specifiers))
        for spec, result in zip(specifiers, results):
            dep = (result.namespace or FILE_NAMESPACE, result.path)
            module.imports[spec] = dep
            self._schedule(dep)

    async def _resolve(self, specifier: str, importer: Module) -> ResolveResult:
        resolve_dir = os.path.dirname(importer.path) if importer.namespace == FILE_NAMESPACE else None
        args = ResolveArgs(
            path=specifier,
            importer=importer.path,
            namespace=importer.namespace,
            resolve_dir=resolve_dir,
        )

        for hook in self._resolve_hooks:
            if not hook.applies(specifier, importer.namespace):
                continue
            try:
                result = await _call(hook.callback, args)
            except BuildError:
                raise
            except Exception as e:
                raise BuildError(f"{importer.path}: {e}", importer=importer.path) from e
            if result is not None:
                return result

        if resolve_dir is not None and (specifier.startswith(("./", "../")) or os.path.isabs(specifier)):
            path = self._resolve_file(os.path.join(resolve_dir, specifier))
            if path is not None:
                return ResolveResult(path=path)

        raise UnresolvedImportError(specifier, importer=importer.path)

    async def _load(self, path: str, namespace: str) -> LoadResult:
        args = LoadArgs(path=path, namespace=namespace)

        for hook in self._load_hooks:
            if not hook.applies(path, namespace):
                continue
            try:
                result = await _call(hook.callback, args)
            except BuildError:
                raise
            except Exception as e:
                raise BuildError(f"{namespace}:{path}: {e}", importer=path) from e
            if result is not None:
                return result

        if namespace != FILE_NAMESPACE:
            raise BuildError(f'No loader is configured for "{namespace}:{path}"', importer=path)

        try:
            with open(path, "rb") as f:
                contents = f.read()
        except OSError as e:
            raise BuildError(f'Could not read "{path}": {e.strerror or e}', importer=path) from e

        return LoadResult(contents=contents, loader=loader_from_pathname(path) or DEFAULT_LOADER)

    @staticmethod
    def _resolve_file(candidate: str) -> str | None:
        candidate = os.path.normpath(os.path.abspath(candidate))
        if os.path.isfile(candidate):
            return candidate
        for ext in RESOLVE_EXTENSIONS:
            if os.path.isfile(candidate + ext):
                return candidate + ext
        if os.path.isdir(candidate):
            for ext in RESOLVE_EXTENSIONS:
                index = os.path.join(candidate, f"index{ext}")
                if os.path.isfile(index):
                    return index
        return None

    def _ordered(self, entries: list[ModuleKey]) -> list[Module]:
        """Post-order walk of the import graph, iterative so import depth is unbounded."""
        ordered: list[Module] = []
        seen: set[ModuleKey] = set()

        for entry in entries:
            if entry in seen:
                continue
            seen.add(entry)
            stack = [(entry, iter(self._modules[entry].imports.values()))]
            while stack:
                key, deps = stack[-1]
                dep = next((d for d in deps if d not in seen), None)
                if dep is None:
                    stack.pop()
                    ordered.append(self._modules[key])
                else:
                    seen.add(dep)
                    stack.append((dep, iter(self._modules[dep].imports.values())))
        return ordered


async def build(entry_points: list[str], plugins: list[Any] | None = None, abs_working_dir: str | None = None):
    """Run a one-off build."""
    return await Build(entry_points, plugins or [], abs_working_dir=abs_working_dir).run()
