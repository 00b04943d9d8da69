"""Tests for configuration section models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from icaliada.config.models import FeedConfig, LogConfig, ServerConfig


def _feed(private: str = "priv-token", public: str = "pub-token") -> FeedConfig:
    return FeedConfig.model_validate(
        {
            "name": "Team",
            "tokens": {"private": private, "public": public},
            "calendars": [{"url": "https://calendar.example/team.ics"}],
        }
    )


class TestServerConfig:
    def test_defaults(self) -> None:
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 8080
        assert cfg.drain_timeout == 10.0

    def test_host_is_stripped(self) -> None:
        assert ServerConfig(host="  127.0.0.1 ").host == "127.0.0.1"

    def test_boolean_port_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(port=True)

    def test_negative_drain_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(drain_timeout=-1)

    def test_frozen(self) -> None:
        cfg = ServerConfig()
        with pytest.raises(ValidationError):
            cfg.port = 1  # type: ignore[misc]


class TestLogConfig:
    def test_defaults(self) -> None:
        cfg = LogConfig()
        assert cfg.level == "info"
        assert cfg.format == "console"

    def test_case_insensitive(self) -> None:
        cfg = LogConfig(level=" DEBUG ", format="JSON")
        assert cfg.level == "debug"
        assert cfg.format == "json"

    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogConfig(level="verbose")


class TestFeedConfig:
    def test_token_matching(self) -> None:
        feed = _feed()
        assert feed.matches_token("priv-token")
        assert feed.matches_token("pub-token")
        assert not feed.matches_token("other")
        assert not feed.matches_token("")

    def test_access_level(self) -> None:
        feed = _feed()
        assert feed.is_private_token("priv-token")
        assert not feed.is_public_token("priv-token")
        assert feed.is_public_token("pub-token")

    def test_secrets_hidden_in_repr(self) -> None:
        text = repr(_feed())
        assert "priv-token" not in text
        assert "pub-token" not in text
        assert "calendar.example" not in text

    def test_tokens_required(self) -> None:
        with pytest.raises(ValidationError):
            FeedConfig.model_validate({"name": "x", "tokens": {"private": "a"}})
