"""Effective settings: YAML file, environment overrides and defaults in one object.

Priority chain (highest to lowest), applied per key:
  1. Env vars      -- recognized ``APP_*`` variables (see :mod:`icaliada.config.env`)
  2. YAML file(s)  -- ``config-default.yml`` with the optional ``APP_CONFIG`` file on top
  3. Code defaults -- baked into the section models

Uses Pydantic Settings v2 with two custom sources that serve the already
loaded file mapping and env overrides, so resolution itself never touches
the filesystem or ``os.environ``.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from icaliada.config.env import EnvOverrides, nest, read_env_overrides
from icaliada.config.models import FeedConfig, LogConfig, ServerConfig
from icaliada.config.source import (
    DEFAULT_CONFIG_FILE,
    EMPTY_CONFIG,
    EXTRA_CONFIG_ENV_VAR,
    EXTRA_CONFIG_FILE,
    RawFileConfig,
    load_layered,
    thaw,
)
from icaliada.errors import ConfigValidationError

log = structlog.get_logger(__name__)


class MappingSettingsSource(PydanticBaseSettingsSource):
    """Serve a pre-loaded nested mapping as a settings source."""

    def __init__(self, settings_cls: type[BaseSettings], data: Mapping[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = thaw(data)

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for the raw sources during construction.
_tls = threading.local()


class AppSettings(BaseSettings):
    """The effective configuration, frozen for the lifetime of the process.

    Construct it with :func:`resolve` or :func:`load_settings`; direct
    instantiation sees neither the file nor the environment.
    """

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    feeds: tuple[FeedConfig, ...] = ()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Replace the stock env/dotenv sources with the resolved overlay and file."""
        file_data = getattr(_tls, "file_data", EMPTY_CONFIG)
        env_data = getattr(_tls, "env_data", {})
        return (
            init_settings,
            MappingSettingsSource(settings_cls, env_data),
            MappingSettingsSource(settings_cls, file_data),
        )

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    def get_feed_by_token(self, token: str) -> FeedConfig | None:
        """Return the feed accepting *token* as its private or public token."""
        for feed in self.feeds:
            if feed.matches_token(token):
                return feed
        return None

    def redacted(self) -> dict[str, Any]:
        """JSON-safe dump with every secret masked."""
        return self.model_dump(mode="json")


def _field_name(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def resolve(base: RawFileConfig, overrides: EnvOverrides) -> AppSettings:
    """Merge file values and env overrides over the defaults and validate.

    Raises:
        ConfigValidationError: naming the first offending dotted field.
    """
    _tls.file_data = base
    _tls.env_data = nest(overrides)
    try:
        return AppSettings()
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0]
        raise ConfigValidationError(
            _field_name(first["loc"]),
            first["msg"],
            errors=[dict(e) for e in errors],
        ) from exc
    finally:
        _tls.file_data = EMPTY_CONFIG
        _tls.env_data = {}


def load_settings(
    config_path: Path | None = None,
    extra_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppSettings:
    """Run the startup sequence: read file(s), read env, resolve.

    An explicit *config_path* must exist; the implicit ``config-default.yml``
    may be absent.  *extra_path* defaults to ``$APP_CONFIG`` or ``config.yml``.
    """
    env = os.environ if environ is None else environ
    if extra_path is None:
        extra_path = Path(env.get(EXTRA_CONFIG_ENV_VAR) or EXTRA_CONFIG_FILE)

    base = load_layered(
        config_path or DEFAULT_CONFIG_FILE,
        extra_path,
        default_required=config_path is not None,
    )
    overrides = read_env_overrides(environ=env)
    settings = resolve(base, overrides)

    log.info(
        "config.resolved",
        overridden=sorted(overrides),
        config=settings.redacted(),
    )
    return settings
