"""check: resolve and print the effective configuration without binding."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

import click

from icaliada.commands._base import IcaliadaCommand

if TYPE_CHECKING:
    from icaliada.commands._context import AppContext


def _flatten(data: Any, prefix: str = "") -> Iterator[tuple[str, Any]]:
    if isinstance(data, dict):
        for key, value in data.items():
            yield from _flatten(value, f"{prefix}.{key}" if prefix else key)
    elif isinstance(data, list) and data:
        for index, value in enumerate(data):
            yield from _flatten(value, f"{prefix}.{index}")
    else:
        yield prefix, data


@click.command(
    cls=IcaliadaCommand,
    examples="""\
  icaliada check
  icaliada check --json
  APP_SERVER_PORT=9100 icaliada --config deploy.yml check""",
)
@click.option("--json", "json_output", is_flag=True, help="Print the configuration as JSON.")
@click.pass_obj
def check(app: AppContext, json_output: bool) -> None:
    """Validate configuration and print the effective values (secrets masked)."""
    data = app.settings.redacted()
    if json_output:
        click.echo(json.dumps(data, indent=2, sort_keys=True))
        return
    for key, value in _flatten(data):
        click.echo(f"{key} = {json.dumps(value)}")
