"""Subcommand modules for icaliada.

Provides register_commands() which uses deferred imports to keep
``icaliada --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from icaliada.commands.check import check
    from icaliada.commands.serve import serve

    cli.add_command(serve)
    cli.add_command(check)
