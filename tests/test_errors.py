"""Tests for the startup error taxonomy."""

from __future__ import annotations

import errno
from pathlib import Path

import pytest

from icaliada.errors import (
    BindError,
    ConfigError,
    ConfigNotFound,
    ConfigParseError,
    ConfigValidationError,
    IcaliadaError,
)


@pytest.mark.parametrize(
    "exc",
    [
        ConfigNotFound(Path("a.yml")),
        ConfigParseError(Path("a.yml"), "bad"),
        ConfigValidationError("server.port", "too big"),
    ],
)
def test_config_errors_share_exit_code(exc: ConfigError) -> None:
    assert isinstance(exc, IcaliadaError)
    assert exc.exit_code == 2


def test_parse_error_location_in_message() -> None:
    err = ConfigParseError(Path("conf.yml"), "unexpected end", line=3, column=7)
    assert str(err) == "Invalid configuration in conf.yml:3:7: unexpected end"


def test_parse_error_without_location() -> None:
    err = ConfigParseError(Path("conf.yml"), "root must be a mapping, got list")
    assert str(err) == "Invalid configuration in conf.yml: root must be a mapping, got list"


def test_validation_error_names_field() -> None:
    err = ConfigValidationError("server.host", "String should have at least 1 character")
    assert err.field == "server.host"
    assert "'server.host'" in str(err)
    assert err.errors == []


def test_bind_error_wraps_os_error() -> None:
    cause = OSError(errno.EADDRINUSE, "Address already in use")
    err = BindError("0.0.0.0", 8080, cause)
    assert err.cause is cause
    assert err.exit_code == 3
    assert not isinstance(err, ConfigError)
    assert str(err) == "Cannot bind 0.0.0.0:8080: Address already in use"
