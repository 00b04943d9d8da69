"""Environment variable overlay.

Only recognized variables are read; each maps to one dotted configuration
key.  Values are kept as raw strings, coercion happens during resolution.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from types import MappingProxyType

EnvOverrides = Mapping[str, str]

RECOGNIZED_ENV: Mapping[str, str] = MappingProxyType(
    {
        "APP_SERVER_HOST": "server.host",
        "APP_SERVER_PORT": "server.port",
        "APP_SERVER_DRAIN_TIMEOUT": "server.drain_timeout",
        "APP_LOG_LEVEL": "log.level",
        "APP_LOG_FORMAT": "log.format",
    }
)


def read_env_overrides(
    names: Mapping[str, str] = RECOGNIZED_ENV,
    environ: Mapping[str, str] | None = None,
) -> EnvOverrides:
    """Collect overrides for every recognized variable present in *environ*.

    *names* maps variable name to dotted key.  *environ* defaults to
    ``os.environ``.  A variable set to the empty string still counts as
    present.
    """
    env = os.environ if environ is None else environ
    return MappingProxyType({key: env[name] for name, key in names.items() if name in env})


def nest(overrides: EnvOverrides) -> dict[str, object]:
    """Expand dotted keys into nested dicts: ``{"server.port": "1"}`` -> ``{"server": {"port": "1"}}``.

    Raises:
        ValueError: one key is both a value and the parent of another key
            (``server`` alongside ``server.port``).
    """
    nested: dict[str, object] = {}
    for dotted, value in overrides.items():
        *parents, leaf = dotted.split(".")
        node = nested
        for depth, part in enumerate(parents, start=1):
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                prefix = ".".join(parents[:depth])
                raise ValueError(f"Conflicting override keys: {prefix!r} and {dotted!r}")
            node = child
        if isinstance(node.get(leaf), dict):
            raise ValueError(f"Conflicting override keys: {dotted!r} and its sub-keys")
        node[leaf] = value
    return nested
