"""End-to-end tests: ImportMapPlugin driven by the reference build host."""

import asyncio
import os

import httpx
import pytest
from importmap_resolver.bundler import Build
from importmap_resolver.config import ImportMapOptions
from importmap_resolver.errors import BuildError
from importmap_resolver.errors import ConfigurationError
from importmap_resolver.errors import FetchStatusError
from importmap_resolver.errors import FetchTimeoutError
from importmap_resolver.errors import PolicyError
from importmap_resolver.errors import UnresolvedImportError
from importmap_resolver.models import Loader
from importmap_resolver.plugin import HTTP_NAMESPACE
from importmap_resolver.plugin import ImportMapPlugin
from importmap_resolver.plugin import import_map_plugin


async def run_build(entry, plugin=None, cwd=None):
    plugins = [plugin] if plugin is not None else []
    return await Build([entry], plugins, abs_working_dir=cwd).run()


def make_plugin(imports=None, **kwargs):
    return ImportMapPlugin(ImportMapOptions(import_map={"imports": imports or {}}, **kwargs))


class TestLocalMappings:
    """Import maps that point at local files."""

    @pytest.mark.asyncio
    async def test_no_import_map_leaves_bare_specifier_unresolved(self, project):
        project.write("index.js", 'import "pkg";\n')

        with pytest.raises(UnresolvedImportError, match='Could not resolve "pkg"'):
            await run_build(project.path("index.js"), ImportMapPlugin())

    @pytest.mark.asyncio
    async def test_empty_import_map_leaves_bare_specifier_unresolved(self, project):
        project.write("index.js", 'import "pkg";\n')

        with pytest.raises(UnresolvedImportError, match='Could not resolve "pkg"'):
            await run_build(project.path("index.js"), make_plugin({}, base_dir=project.dir))

    @pytest.mark.asyncio
    async def test_relative_imports_untouched_without_import_map(self, project):
        project.write("foo.js", 'export const which = "relative-ok";\n')
        project.write("index.js", 'import { which } from "./foo.js"; console.log(which);\n')

        result = await run_build(project.path("index.js"))

        assert "relative-ok" in result.output_text

    @pytest.mark.asyncio
    async def test_relative_imports_not_affected_by_import_map(self, project):
        project.write("foo.js", 'export const which = "relative-ok";\n')
        project.write("index.js", 'import { which } from "./foo.js";\nconsole.log(which);\n')

        plugin = make_plugin({"pkg": "./override.js", "pkg/": "./pkg/"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert "relative-ok" in result.output_text

    @pytest.mark.asyncio
    async def test_relative_imports_from_mapped_local_target(self, project):
        project.write("src/foo/index.js", 'import { x } from "./abc.js";\nconsole.log(x);\n')
        project.write("src/foo/abc.js", 'export const x = "ok-rel";\n')
        project.write("index.js", 'import "foo";\n')

        plugin = make_plugin({"foo": "./src/foo/index.js"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert "ok-rel" in result.output_text

    @pytest.mark.asyncio
    async def test_exact_mapping_replaces_bare_specifier(self, project):
        project.write("override.js", 'export const which = "exact";\n')
        project.write("pkg/index.js", 'export const which = "prefix";\n')
        project.write("index.js", 'import { which } from "pkg"; console.log(which);\n')

        plugin = make_plugin({"pkg": "./override.js", "pkg/": "./pkg/"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert '"exact"' in result.output_text
        assert '"prefix"' not in result.output_text

    @pytest.mark.asyncio
    async def test_scoped_exact_beats_scoped_prefix(self, project):
        project.write("override.js", 'export const which = "scoped-exact";\n')
        project.write("pkg/index.js", 'export const which = "scoped-prefix";\n')
        project.write("index.js", 'import { which } from "@scope/pkg"; console.log(which);\n')

        plugin = make_plugin({"@scope/pkg": "./override.js", "@scope/pkg/": "./pkg/"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert "scoped-exact" in result.output_text
        assert "scoped-prefix" not in result.output_text

    @pytest.mark.asyncio
    async def test_exact_only_mapping_does_not_apply_to_subpaths(self, project):
        project.write("override.js", 'export const which = "exact-only";\n')
        project.write("index-exact.js", 'import { which } from "pkg"; console.log(which);\n')
        project.write("index-subpath.js", 'import "pkg/subpath.js";\n')
        plugin = make_plugin({"pkg": "./override.js"}, base_dir=project.dir)

        result = await run_build(project.path("index-exact.js"), plugin)
        assert "exact-only" in result.output_text

        with pytest.raises(UnresolvedImportError, match='Could not resolve "pkg/subpath.js"'):
            await run_build(project.path("index-subpath.js"), plugin)

    def test_prefix_target_without_slash_fails_at_setup(self):
        with pytest.raises(ConfigurationError, match="ending in '/'"):
            make_plugin({"pkg/": "./pkg"})

    @pytest.mark.asyncio
    async def test_prefix_mapping_rewrites_subpaths(self, project):
        project.write("pkg/index.js", 'export const root = "pkg-root";\n')
        project.write("pkg/util.js", 'export const util = "pkg-util";\n')
        project.write("index.js", 'import { root } from "pkg/index.js";\nimport { util } from "pkg/util.js";\n')

        plugin = make_plugin({"pkg/": "./pkg/"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert "pkg-root" in result.output_text
        assert "pkg-util" in result.output_text

    @pytest.mark.asyncio
    async def test_prefix_only_mapping_does_not_satisfy_bare_key(self, project):
        project.write("pkg/index.js", 'export const root = "pkg-root";\n')
        project.write("index.js", 'import "pkg";\n')

        plugin = make_plugin({"pkg/": "./pkg/"}, base_dir=project.dir)
        with pytest.raises(UnresolvedImportError, match='Could not resolve "pkg"'):
            await run_build(project.path("index.js"), plugin)

    @pytest.mark.asyncio
    async def test_longest_prefix_wins(self, project):
        project.write("pkg/utils/index.js", 'export const v = "pkg-root";\n')
        project.write("utils1/index.js", 'export const v = "pkg-utils1";\n')
        project.write("index.js", 'import { v } from "pkg/utils/index.js";\n')

        plugin = make_plugin({"pkg/": "./pkg/", "pkg/utils/": "./utils1/"}, base_dir=project.dir)
        result = await run_build(project.path("index.js"), plugin)

        assert "pkg-utils1" in result.output_text
        assert "pkg-root" not in result.output_text


class TestBaseDir:
    """BaseDir precedence: option -> host working dir -> process cwd."""

    @pytest.mark.asyncio
    async def test_explicit_base_dir_beats_working_dir(self, project):
        project.write("base/lib.js", 'export const v = "baseDir";\n')
        project.write("work/lib.js", 'export const v = "absDir";\n')
        project.write("index.js", 'import { v } from "lib";\n')

        plugin = make_plugin({"lib": "./lib.js"}, base_dir=project.path("base"))
        result = await run_build(project.path("index.js"), plugin, cwd=project.path("work"))

        assert "baseDir" in result.output_text
        assert "absDir" not in result.output_text

    @pytest.mark.asyncio
    async def test_working_dir_used_without_base_dir(self, project):
        project.write("work/lib.js", 'export const v = "workDir";\n')
        project.write("index.js", 'import { v } from "lib";\n')

        plugin = make_plugin({"lib": "./lib.js"})
        result = await run_build(project.path("index.js"), plugin, cwd=project.path("work"))

        assert "workDir" in result.output_text
        assert plugin.base_dir == project.path("work")

    @pytest.mark.asyncio
    async def test_process_cwd_used_as_last_resort(self, project, monkeypatch):
        project.write("lib.js", 'export const v = "cwd";\n')
        project.write("index.js", 'import { v } from "lib";\n')
        monkeypatch.chdir(project.root)

        plugin = make_plugin({"lib": "./lib.js"})
        result = await run_build(project.path("index.js"), plugin)

        assert '"cwd"' in result.output_text
        assert plugin.base_dir == os.getcwd()


class TestRemoteModules:
    """Mappings that point at http(s) URLs."""

    @pytest.mark.asyncio
    async def test_http_mapping_rejected_when_disabled(self, project, server):
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, base_dir=project.dir, http_client=client)
            with pytest.raises(BuildError, match=r"HTTP\(S\) imports are disabled") as exc_info:
                await run_build(project.path("index.js"), plugin)

        assert isinstance(exc_info.value.__cause__, PolicyError)
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_http_prefix_mapping_rejected_when_disabled(self, project):
        project.write("index.js", 'import "@scope/pkg/a.js";\n')

        plugin = make_plugin({"@scope/pkg/": "https://example.com/scope/"}, base_dir=project.dir)
        with pytest.raises(BuildError) as exc_info:
            await run_build(project.path("index.js"), plugin)

        cause = exc_info.value.__cause__
        assert isinstance(cause, PolicyError)
        assert cause.specifier == "@scope/pkg/a.js"
        assert cause.target == "https://example.com/scope/a.js"

    @pytest.mark.asyncio
    async def test_http_mapping_fetched_once(self, project, server):
        server.add("https://example.com/a.js", "export const a = 1;")
        project.write("index.js", 'import { a } from "pkg"; console.log(a);\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert server.count("https://example.com/a.js") == 1
        assert "export const a = 1;" in result.output_text
        module = result.get("https://example.com/a.js", HTTP_NAMESPACE)
        assert module is not None
        assert module.loader == Loader.JS

    @pytest.mark.asyncio
    async def test_scoped_specifier_fetched_once(self, project, server):
        server.add("https://example.com/scoped.js", "export const s = 1;")
        project.write("index.js", 'import { s } from "@scope/pkg"; console.log(s);\n')

        async with server.client() as client:
            plugin = make_plugin({"@scope/pkg": "https://example.com/scoped.js"}, enable_http=True, http_client=client)
            await run_build(project.path("index.js"), plugin)

        assert server.calls == ["https://example.com/scoped.js"]

    @pytest.mark.asyncio
    async def test_duplicate_import_fetched_once(self, project, server):
        server.add("https://example.com/a.js", "export const a = 1;")
        project.write("other.js", 'import { a } from "pkg";\nexport const b = a;\n')
        project.write("index.js", 'import { a } from "pkg";\nimport { b } from "./other.js";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            await run_build(project.path("index.js"), plugin)

        assert server.count("https://example.com/a.js") == 1

    @pytest.mark.asyncio
    async def test_two_specifiers_same_url_fetched_once(self, project, server):
        server.add("https://example.com/a.js", "export const a = 1;")
        project.write("index.js", 'import { a } from "pkg";\nimport { a as b } from "alias";\n')

        async with server.client() as client:
            plugin = make_plugin(
                {"pkg": "https://example.com/a.js", "alias": "https://example.com/a.js"},
                enable_http=True,
                http_client=client,
            )
            await run_build(project.path("index.js"), plugin)

        assert server.count("https://example.com/a.js") == 1

    @pytest.mark.asyncio
    async def test_prefix_mapped_remote_modules(self, project, server):
        server.add("https://cdn.example.com/lib/a.js", "export const a = 1;")
        server.add("https://cdn.example.com/lib/b.js", "export const b = 2;")
        project.write("index.js", 'import "lib/a.js";\nimport "lib/b.js";\n')

        async with server.client() as client:
            plugin = make_plugin({"lib/": "https://cdn.example.com/lib/"}, enable_http=True, http_client=client)
            await run_build(project.path("index.js"), plugin)

        assert set(server.calls) == {"https://cdn.example.com/lib/a.js", "https://cdn.example.com/lib/b.js"}

    @pytest.mark.asyncio
    async def test_unknown_bare_import_inside_remote_module_left_unresolved(self, project, server):
        server.add("https://example.com/a.js", 'import "unknown-dep";\nexport const a = 1;')
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            with pytest.raises(UnresolvedImportError, match='Could not resolve "unknown-dep"'):
                await run_build(project.path("index.js"), plugin)

        assert server.calls == ["https://example.com/a.js"]

    @pytest.mark.asyncio
    async def test_bare_import_inside_remote_module_uses_import_map(self, project, server):
        server.add("https://example.com/a.js", 'import { helper } from "helper";\nexport const a = helper;')
        project.write("vendor/helper.js", 'export const helper = "local-helper";\n')
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin(
                {"pkg": "https://example.com/a.js", "helper": "./vendor/helper.js"},
                base_dir=project.dir,
                enable_http=True,
                http_client=client,
            )
            result = await run_build(project.path("index.js"), plugin)

        assert "local-helper" in result.output_text
        assert server.calls == ["https://example.com/a.js"]

    @pytest.mark.asyncio
    async def test_relative_imports_inside_remote_module(self, project, server):
        server.add("https://example.com/lib/a.js", 'import { b } from "./b.js";\nexport const a = b + 1;')
        server.add("https://example.com/lib/b.js", "export const b = 41;")
        project.write("index.js", 'import { a } from "pkg";\nconsole.log(a);\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/lib/a.js"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert server.calls == ["https://example.com/lib/a.js", "https://example.com/lib/b.js"]
        assert "b = 41" in result.output_text
        assert result.output_text.index("b = 41") < result.output_text.index("a = b + 1")

    @pytest.mark.asyncio
    async def test_absolute_url_inside_remote_module(self, project, server):
        server.add("https://example.com/a.js", 'import "https://other.example.com/c.js";')
        server.add("https://other.example.com/c.js", "export const c = 3;")
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert "c = 3" in result.output_text

    @pytest.mark.asyncio
    async def test_relative_imports_follow_redirects(self, project, server):
        server.redirect("https://example.com/pkg", "https://cdn.example.com/pkg@1.0.0/index.js")
        server.add("https://cdn.example.com/pkg@1.0.0/index.js", 'import "./util.js";')
        server.add("https://cdn.example.com/pkg@1.0.0/util.js", "export const util = 1;")
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/pkg"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert "https://cdn.example.com/pkg@1.0.0/util.js" in server.calls
        assert "https://example.com/util.js" not in server.calls
        assert "util = 1" in result.output_text

    @pytest.mark.asyncio
    async def test_transitive_imports_deduplicated(self, project, server):
        server.add("https://example.com/a.js", 'import { b } from "./b.js";\nexport const a = b + 1;')
        server.add("https://example.com/c.js", 'import { b } from "./b.js";\nexport const c = b + 2;')
        server.add("https://example.com/b.js", "export const b = 1;")
        project.write("index.js", 'import { a } from "a";\nimport { c } from "c";\n')

        async with server.client() as client:
            plugin = make_plugin(
                {"a": "https://example.com/a.js", "c": "https://example.com/c.js"},
                enable_http=True,
                http_client=client,
            )
            result = await run_build(project.path("index.js"), plugin)

        assert "b + 1" in result.output_text
        assert server.count("https://example.com/a.js") == 1
        assert server.count("https://example.com/c.js") == 1
        assert server.count("https://example.com/b.js") == 1

    @pytest.mark.asyncio
    async def test_non_success_status_fails_build(self, project, server):
        server.add("https://example.com/a.js", "nope", status=404)
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            with pytest.raises(BuildError, match=r"GET https://example\.com/a\.js failed: status 404") as exc_info:
                await run_build(project.path("index.js"), plugin)

        assert isinstance(exc_info.value.__cause__, FetchStatusError)

    @pytest.mark.asyncio
    async def test_timeout_fails_build(self, project):
        async def slow_handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"late")

        project.write("index.js", 'import "pkg";\n')

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow_handler)) as client:
            plugin = make_plugin(
                {"pkg": "https://example.com/a.js"},
                enable_http=True,
                timeout_ms=10,
                http_client=client,
            )
            with pytest.raises(BuildError, match="aborted") as exc_info:
                await run_build(project.path("index.js"), plugin)

        assert isinstance(exc_info.value.__cause__, FetchTimeoutError)

    @pytest.mark.asyncio
    async def test_fetch_cache_is_scoped_to_one_build(self, project, server):
        server.add("https://example.com/a.js", "export const a = 1;")
        project.write("index.js", 'import "pkg";\n')

        async with server.client() as client:
            plugin = make_plugin({"pkg": "https://example.com/a.js"}, enable_http=True, http_client=client)
            await run_build(project.path("index.js"), plugin)
            await run_build(project.path("index.js"), plugin)

        assert server.count("https://example.com/a.js") == 2


class TestRemoteLoaders:
    """Loader selection for fetched modules."""

    @pytest.mark.asyncio
    async def test_extension_wins_over_content_type(self, project, server):
        server.add("https://example.com/mod.ts", "export const x: number = 1;", content_type="application/javascript")
        project.write("index.js", 'import "mod";\n')

        async with server.client() as client:
            plugin = make_plugin({"mod": "https://example.com/mod.ts"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert result.get("https://example.com/mod.ts", HTTP_NAMESPACE).loader == Loader.TS

    @pytest.mark.asyncio
    async def test_content_type_used_without_extension(self, project, server):
        server.add("https://example.com/mod", '{"x": 2}', content_type="application/json")
        project.write("index.js", 'import "mod";\n')

        async with server.client() as client:
            plugin = make_plugin({"mod": "https://example.com/mod"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert result.get("https://example.com/mod", HTTP_NAMESPACE).loader == Loader.JSON

    @pytest.mark.asyncio
    async def test_falls_back_to_js(self, project, server):
        server.add("https://example.com/mod", "export const x = 3;", content_type="application/x-unknown")
        project.write("index.js", 'import "mod";\n')

        async with server.client() as client:
            plugin = make_plugin({"mod": "https://example.com/mod"}, enable_http=True, http_client=client)
            result = await run_build(project.path("index.js"), plugin)

        assert result.get("https://example.com/mod", HTTP_NAMESPACE).loader == Loader.JS

    @pytest.mark.asyncio
    async def test_loader_resolver_overrides(self, project, server):
        server.add("https://example.com/mod.js", "x = 4", content_type="application/javascript")
        project.write("index.js", 'import "mod";\n')
        requests = []

        async def loader_resolver(request, response):
            requests.append(request)
            return "text"

        async with server.client() as client:
            plugin = make_plugin(
                {"mod": "https://example.com/mod.js"},
                enable_http=True,
                loader_resolver=loader_resolver,
                http_client=client,
            )
            result = await run_build(project.path("index.js"), plugin)

        assert result.get("https://example.com/mod.js", HTTP_NAMESPACE).loader == Loader.TEXT
        assert requests[0].path == "https://example.com/mod.js"
        assert requests[0].namespace == HTTP_NAMESPACE

    @pytest.mark.asyncio
    async def test_loader_resolver_can_decline(self, project, server):
        server.add("https://example.com/mod.css", "body {}", content_type="text/plain")
        project.write("index.js", 'import "mod";\n')

        async with server.client() as client:
            plugin = make_plugin(
                {"mod": "https://example.com/mod.css"},
                enable_http=True,
                loader_resolver=lambda request, response: None,
                http_client=client,
            )
            result = await run_build(project.path("index.js"), plugin)

        assert result.get("https://example.com/mod.css", HTTP_NAMESPACE).loader == Loader.CSS


class TestLogging:
    """Diagnostic log sink."""

    @pytest.mark.asyncio
    async def test_on_log_receives_match_messages(self, project):
        project.write("override.js", "export const x = 1;\n")
        project.write("index.js", 'import "pkg";\n')
        messages = []

        plugin = make_plugin({"pkg": "./override.js"}, base_dir=project.dir, on_log=messages.append)
        await run_build(project.path("index.js"), plugin)

        assert "Exact match: [pkg] pkg -> ./override.js" in messages

    def test_factory_builds_plugin(self):
        plugin = import_map_plugin(import_map={"imports": {"pkg": "./pkg.js"}}, enable_http=True)

        assert plugin.name == "import-map"
        assert plugin.options.enable_http is True
        assert plugin.matcher.match("pkg").target == "./pkg.js"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timeout_ms": 0},
            {"import_map": {"imports": {"pkg": 1}}},
            {"enable_http": "sometimes"},
        ],
    )
    def test_factory_reports_invalid_options_as_configuration_error(self, kwargs):
        with pytest.raises(ConfigurationError, match="Invalid options"):
            import_map_plugin(**kwargs)

    def test_factory_rejects_invalid_prefix_target(self):
        with pytest.raises(ConfigurationError, match="ending in '/'"):
            import_map_plugin(import_map={"imports": {"lib/": "./lib"}})
