"""Root CLI group for icaliada with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click

from icaliada import __version__
from icaliada.commands import register_commands
from icaliada.commands._context import AppContext


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="icaliada")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (must exist). Default: ./config-default.yml if present.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_json: bool,
    config_path: Path | None,
) -> None:
    """icaliada: calendar feed service."""
    ctx.obj = AppContext(config_path=config_path, verbose=verbose, log_json=log_json)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
