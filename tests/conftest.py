"""Shared pytest fixtures and test helpers for icaliada tests."""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
from click.testing import CliRunner

from icaliada.config.env import RECOGNIZED_ENV
from icaliada.config.settings import AppSettings, resolve
from icaliada.config.source import EXTRA_CONFIG_ENV_VAR


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every APP_* variable, and undo anything a .env load adds."""
    for name in (*RECOGNIZED_ENV, EXTRA_CONFIG_ENV_VAR):
        # setenv first so monkeypatch records the variable and restores it on teardown.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test from an empty directory so no real config files are found."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    app = logging.getLogger("icaliada")
    app_level = app.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    app.setLevel(app_level)


@pytest.fixture
def free_port() -> int:
    """A TCP port that was free a moment ago on 127.0.0.1."""
    with socket.create_server(("127.0.0.1", 0)) as sock:
        return sock.getsockname()[1]


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def make_settings(**server: Any) -> AppSettings:
    """Resolve settings whose ``server`` section comes from *server* kwargs."""
    return resolve({"server": server}, {})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* on the running loop until true, or fail the test."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)
