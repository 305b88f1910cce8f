"""Resolve and check commands: inspect an import map without building."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from rich.table import Table

from ..config import resolve_options
from ..console import console
from ..errors import ImportMapError
from ..matcher import SpecifierMatcher
from ..matcher import is_bare_specifier
from ..models import RemoteRef
from ..targets import resolve_target
from ..utils.error_format import escape_markup
from ..utils.error_format import format_error_message


@click.command(name="resolve")
@click.argument("specifier")
@click.option("--import-map", "import_map_path", type=click.Path(exists=True, dir_okay=False), help="Import map JSON file")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False), help="Settings YAML file")
@click.option("--base-dir", type=click.Path(file_okay=False), help="Directory that anchors relative targets")
@click.option("--enable-http/--no-enable-http", default=None, help="Allow mapping specifiers to http(s) URLs")
def resolve_cmd(
    specifier: str,
    import_map_path: str | None,
    settings_path: str | None,
    base_dir: str | None,
    enable_http: bool | None,
):
    """Show what SPECIFIER resolves to."""
    try:
        options = resolve_options(
            settings_path=settings_path,
            import_map_path=import_map_path,
            base_dir=str(Path(base_dir).resolve()) if base_dir else None,
            enable_http=enable_http,
        )
        matcher = SpecifierMatcher(options.import_map.imports)

        if not is_bare_specifier(specifier):
            console.print(f"[yellow]{escape_markup(specifier)} is not a bare specifier; the import map does not apply[/yellow]")
            return

        match = matcher.match(specifier)
        if match is None:
            console.print(f"[yellow]{escape_markup(specifier)} is not mapped; default resolution applies[/yellow]")
            return

        target = resolve_target(match.target, options.base_dir or os.getcwd(), options.enable_http, specifier)
    except ImportMapError as e:
        console.print(f"[red]Error:[/red] {escape_markup(format_error_message(e, include_type=False))}")
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Match", match.kind)
    table.add_row("Key", escape_markup(match.key))
    table.add_row("Target", escape_markup(match.target))
    if isinstance(target, RemoteRef):
        table.add_row("Remote", escape_markup(target.url))
    else:
        table.add_row("Local", escape_markup(target.path))
    console.print(table)


@click.command(name="check")
@click.option("--import-map", "import_map_path", type=click.Path(exists=True, dir_okay=False), help="Import map JSON file")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False), help="Settings YAML file")
def check_cmd(import_map_path: str | None, settings_path: str | None):
    """Validate the import map and list its entries."""
    try:
        options = resolve_options(settings_path=settings_path, import_map_path=import_map_path)
        matcher = SpecifierMatcher(options.import_map.imports)
    except ImportMapError as e:
        console.print(f"[red]Invalid:[/red] {escape_markup(format_error_message(e, include_type=False))}")
        sys.exit(1)

    if not len(matcher):
        console.print("[yellow]Import map is empty[/yellow]")
        return

    table = Table(title="Import map", show_header=True, header_style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Key")
    table.add_column("Target")
    for key in matcher.exact_keys:
        table.add_row("exact", escape_markup(key), escape_markup(matcher.imports[key]))
    for key in matcher.prefix_keys:
        table.add_row("prefix", escape_markup(key), escape_markup(matcher.imports[key]))
    console.print(table)
    console.print(f"[green]✓[/green] {len(matcher)} entries valid")
