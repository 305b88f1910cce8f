"""importmap CLI - bundle JavaScript with browser-style import maps."""

import logging

import click

from . import __version__
from .commands import build_cmd
from .commands import check_cmd
from .commands import resolve_cmd
from .logging_setup import init_json_logging

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="importmap")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Append JSONL logs to this file")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level for the JSONL log",
)
def cli(log_file: str | None, log_level: str | None):
    """Resolve bare specifiers through an import map and bundle the result."""
    if log_file or log_level:
        init_json_logging(path=log_file, level=log_level)
        logger.debug("[importmap:cli] JSONL logging initialised")


cli.add_command(build_cmd)
cli.add_command(resolve_cmd)
cli.add_command(check_cmd)


def main():
    cli()


if __name__ == "__main__":
    main()
