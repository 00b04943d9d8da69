"""serve: resolve configuration, bind the listener and run until stopped."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from icaliada.commands._base import IcaliadaCommand
from icaliada.errors import BindError

if TYPE_CHECKING:
    from icaliada.commands._context import AppContext


@click.command(
    cls=IcaliadaCommand,
    examples="""\
  # Defaults from config-default.yml, overridden by the environment
  icaliada serve

  # Bind a different port for this run
  APP_SERVER_PORT=9100 icaliada serve

  # Explicit configuration file, JSON logs
  icaliada --config /etc/icaliada.yml --log-json serve""",
)
@click.pass_obj
def serve(app: AppContext) -> None:
    """Run the service until SIGINT/SIGTERM, then drain and exit."""
    from icaliada.service.bootstrap import run

    settings = app.settings
    try:
        code = run(settings)
    except BindError as exc:
        app.fail(exc)
    if code:
        raise SystemExit(code)
