"""Configuration file loading.

Reads ``config-default.yml`` (and the optional extra file named by
``APP_CONFIG``) into a read-only nested mapping.  The mapping is raw: no
defaults, no coercion.  Validation happens in :mod:`icaliada.config.settings`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import MarkedYAMLError, YAMLError

from icaliada.errors import ConfigNotFound, ConfigParseError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config-default.yml")
EXTRA_CONFIG_FILE = Path("config.yml")
EXTRA_CONFIG_ENV_VAR = "APP_CONFIG"

RawFileConfig = Mapping[str, Any]

EMPTY_CONFIG: RawFileConfig = MappingProxyType({})


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Return a plain ``dict``/``list`` copy of a frozen config structure."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


def load_config_file(path: Path) -> RawFileConfig:
    """Parse a YAML configuration file into a read-only mapping.

    An empty file yields an empty mapping.

    Raises:
        ConfigNotFound: *path* does not exist or is not a regular file.
        ConfigParseError: the file cannot be read, or its content is not
            valid YAML, not UTF-8, or its root is not a mapping.
    """
    path = Path(path)
    try:
        if not path.is_file():
            raise ConfigNotFound(path)
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigParseError(path, f"not valid UTF-8 ({exc.reason})") from exc
    except OSError as exc:
        raise ConfigParseError(path, f"cannot read file ({exc.strerror or exc})") from exc

    try:
        data = YAML(typ="safe").load(raw)
    except MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        raise ConfigParseError(
            path,
            exc.problem or exc.context or "malformed YAML",
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
        ) from exc
    except YAMLError as exc:
        raise ConfigParseError(path, str(exc)) from exc

    if data is None:
        return EMPTY_CONFIG
    if not isinstance(data, Mapping):
        raise ConfigParseError(path, f"root must be a mapping, got {type(data).__name__}")

    logger.debug("Loaded configuration file %s", path)
    return _freeze(data)


def deep_merge(base: RawFileConfig, override: RawFileConfig) -> RawFileConfig:
    """Merge *override* over *base*: mappings merge per key, anything else is replaced.

    Neither input is mutated.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return MappingProxyType(merged)


def load_layered(
    default_path: Path = DEFAULT_CONFIG_FILE,
    extra_path: Path | None = None,
    *,
    default_required: bool = True,
) -> RawFileConfig:
    """Load the default file and deep-merge the optional extra file over it.

    When *default_required* is False a missing default file is logged and
    treated as empty, so the built-in defaults apply.  A missing extra file
    is always ignored; a malformed one is always fatal.
    """
    try:
        base = load_config_file(default_path)
    except ConfigNotFound:
        if default_required:
            raise
        logger.warning("Default configuration file %s not found, using built-in defaults", default_path)
        base = EMPTY_CONFIG

    if extra_path is None:
        return base

    try:
        extra = load_config_file(extra_path)
    except ConfigNotFound:
        logger.debug("No extra configuration file at %s", extra_path)
        return base
    return deep_merge(base, extra)
