"""Build command: bundle entry points with the import map applied."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path

import click
from rich.table import Table

from ..bundler import Build
from ..bundler import BuildResult
from ..config import resolve_options
from ..console import console
from ..errors import ImportMapError
from ..plugin import HTTP_NAMESPACE
from ..plugin import ImportMapPlugin
from ..utils.error_format import escape_markup
from ..utils.error_format import format_build_error

logger = logging.getLogger(__name__)


def _print_summary(result: BuildResult, plugin: ImportMapPlugin) -> None:
    table = Table(title="Modules", show_header=True, header_style="bold")
    table.add_column("Source", style="cyan")
    table.add_column("Path")
    table.add_column("Loader", style="green")
    table.add_column("Size", justify="right")

    for module in result.modules:
        source = "remote" if module.namespace == HTTP_NAMESPACE else module.namespace
        table.add_row(source, escape_markup(module.path), module.loader.value, f"{len(module.contents)} B")

    console.print(table)

    if plugin.fetch_cache is not None:
        stats = plugin.fetch_cache.stats()
        if stats["network_fetches"]:
            console.print(
                f"[dim]Fetched {stats['network_fetches']} remote module(s), "
                f"{stats['redirected']} redirected[/dim]"
            )


@click.command(name="build")
@click.argument("entry_points", nargs=-1, required=True)
@click.option("--import-map", "import_map_path", type=click.Path(exists=True, dir_okay=False), help="Import map JSON file")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False), help="Settings YAML file")
@click.option("--base-dir", type=click.Path(file_okay=False), help="Directory that anchors relative targets")
@click.option("--enable-http/--no-enable-http", default=None, help="Allow mapping specifiers to http(s) URLs")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Per-fetch timeout in milliseconds")
@click.option("--outfile", "-o", type=click.Path(dir_okay=False), help="Write the bundle here instead of stdout")
@click.option("--verbose", "-v", is_flag=True, help="Show resolution diagnostics")
def build_cmd(
    entry_points: tuple[str, ...],
    import_map_path: str | None,
    settings_path: str | None,
    base_dir: str | None,
    enable_http: bool | None,
    timeout_ms: int | None,
    outfile: str | None,
    verbose: bool,
):
    """Bundle ENTRY_POINTS, resolving bare specifiers through the import map."""

    def on_log(message: str) -> None:
        console.print(f"[dim]{escape_markup(message)}[/dim]")

    try:
        options = resolve_options(
            settings_path=settings_path,
            import_map_path=import_map_path,
            base_dir=str(Path(base_dir).resolve()) if base_dir else None,
            enable_http=enable_http,
            timeout_ms=timeout_ms,
            on_log=on_log if verbose else None,
        )
        plugin = ImportMapPlugin(options)
        result = asyncio.run(Build(list(entry_points), [plugin], abs_working_dir=os.getcwd()).run())
    except ImportMapError as e:
        logger.error(f"Build failed: {e}")
        console.print(f"[red]Build failed:[/red] {escape_markup(format_build_error(e))}")
        sys.exit(1)

    if outfile:
        Path(outfile).parent.mkdir(parents=True, exist_ok=True)
        Path(outfile).write_text(result.output_text, encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote {escape_markup(outfile)}")
    else:
        click.echo(result.output_text, nl=False)

    _print_summary(result, plugin)
