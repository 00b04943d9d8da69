"""AppContext: shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Settings are resolved lazily on first use so
``--help`` and ``--version`` never read configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from dotenv import find_dotenv, load_dotenv

from icaliada.config.logging import configure_logging
from icaliada.errors import ConfigError, IcaliadaError

if TYPE_CHECKING:
    from icaliada.config.settings import AppSettings

logger = logging.getLogger(__name__)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Parameters:
        config_path: Explicit ``--config`` file, or None for ``config-default.yml``.
        verbose: Force DEBUG logging regardless of ``log.level``.
        log_json: Force JSON logs regardless of ``log.format``.
    """

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        verbose: bool = False,
        log_json: bool = False,
    ) -> None:
        self.config_path = config_path
        self.verbose = verbose
        self.log_json = log_json
        self._settings: AppSettings | None = None

        configure_logging(level="debug" if verbose else "info", log_json=log_json)

        # Existing environment variables win over .env entries.
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path, override=False)
            logger.debug("Loaded environment from %s", dotenv_path)
        else:
            logger.warning(".env file is missing")

    @property
    def settings(self) -> AppSettings:
        """The effective settings (resolved on first access).

        Configuration errors terminate the process with exit code 2.
        """
        if self._settings is None:
            from icaliada.config.settings import load_settings

            try:
                settings = load_settings(self.config_path)
            except ConfigError as exc:
                self.fail(exc)
            configure_logging(
                level="debug" if self.verbose else settings.log.level,
                log_json=self.log_json or settings.log.format == "json",
            )
            self._settings = settings
        return self._settings

    def fail(self, exc: IcaliadaError) -> NoReturn:
        """Report a fatal startup error on stderr and exit with its code."""
        logger.error("%s", exc)
        click.echo(f"ERROR: {exc}", err=True)
        raise SystemExit(exc.exit_code)
