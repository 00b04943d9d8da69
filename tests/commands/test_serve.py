"""Tests for the serve command."""

from __future__ import annotations

import socket
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from icaliada.cli import cli
from icaliada.config.settings import AppSettings
from icaliada.errors import BindError


class TestServeCommand:
    def test_serve_registered(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--help"])
        assert "serve" in result.output

    def test_serve_runs_with_resolved_settings(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "config-default.yml").write_text("server:\n  host: 127.0.0.1\n  port: 9000\n")

        with patch("icaliada.service.bootstrap.run", return_value=0) as run:
            result = cli_runner.invoke(cli, ["serve"], env={"APP_SERVER_PORT": "9100"})

        assert result.exit_code == 0, result.output
        run.assert_called_once()
        (settings,), _ = run.call_args
        assert isinstance(settings, AppSettings)
        assert settings.host == "127.0.0.1"
        assert settings.port == 9100

    def test_missing_config_exits_before_binding(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        with patch("icaliada.service.bootstrap.Application.build") as build:
            result = cli_runner.invoke(cli, ["--config", str(tmp_path / "absent.yml"), "serve"])

        assert result.exit_code == 2
        assert "not found" in result.stderr
        build.assert_not_called()

    def test_unreadable_config_exits_with_config_error(
        self, cli_runner: CliRunner, tmp_path: Path
    ) -> None:
        config = tmp_path / "locked.yml"
        config.write_text("server:\n  port: 9000\n")
        original_read_text = Path.read_text

        def read_text(self: Path, *args: object, **kwargs: object) -> str:
            if self.name == "locked.yml":
                raise PermissionError(13, "Permission denied", str(self))
            return original_read_text(self, *args, **kwargs)  # type: ignore[arg-type]

        with (
            patch.object(Path, "read_text", read_text),
            patch("icaliada.service.bootstrap.Application.build") as build,
        ):
            result = cli_runner.invoke(cli, ["--config", str(config), "serve"])

        assert result.exit_code == 2
        assert "cannot read file" in result.stderr
        build.assert_not_called()

    def test_invalid_config_exits_before_binding(self, cli_runner: CliRunner) -> None:
        with patch("icaliada.service.bootstrap.Application.build") as build:
            result = cli_runner.invoke(cli, ["serve"], env={"APP_SERVER_PORT": "0"})

        assert result.exit_code == 2
        build.assert_not_called()

    def test_bind_failure_exit_code(self, cli_runner: CliRunner) -> None:
        with socket.create_server(("127.0.0.1", 0)) as taken:
            port = taken.getsockname()[1]
            result = cli_runner.invoke(
                cli,
                ["serve"],
                env={"APP_SERVER_HOST": "127.0.0.1", "APP_SERVER_PORT": str(port)},
            )

        assert result.exit_code == BindError.exit_code
        assert f"127.0.0.1:{port}" in result.stderr

    def test_serve_examples(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["serve", "--examples"])
        assert result.exit_code == 0
        assert "APP_SERVER_PORT=9100 icaliada serve" in result.output
