"""Pydantic configuration models with code-baked defaults.

Sparse YAML contract: defaults baked here, ``config-default.yml`` and the
environment only contain overrides.
"""

from __future__ import annotations

import hmac
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, SecretStr, StringConstraints, field_validator

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_DRAIN_TIMEOUT = 10.0

LogLevel = Literal["debug", "info", "warning", "error"]
LogFormat = Literal["console", "json"]


class ServerConfig(BaseModel):
    """[server] section."""

    model_config = {"frozen": True}

    host: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)] = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    drain_timeout: float = Field(default=DEFAULT_DRAIN_TIMEOUT, ge=0, allow_inf_nan=False)

    @field_validator("port", mode="before")
    @classmethod
    def _reject_bool_port(cls, value: Any) -> Any:
        # YAML ``port: yes`` must not become port 1.
        if isinstance(value, bool):
            raise ValueError("port must be an integer, not a boolean")
        return value


class LogConfig(BaseModel):
    """[log] section."""

    model_config = {"frozen": True}

    level: LogLevel = "info"
    format: LogFormat = "console"

    @field_validator("level", "format", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class CalendarConfig(BaseModel):
    """One upstream iCal calendar of a feed."""

    model_config = {"frozen": True}

    url: SecretStr


class TokensConfig(BaseModel):
    """Access tokens of a feed.

    The private token grants full event details, the public one free/busy only.
    """

    model_config = {"frozen": True}

    private: SecretStr
    public: SecretStr


class FeedConfig(BaseModel):
    """[[feeds]] entry."""

    model_config = {"frozen": True}

    name: str
    tokens: TokensConfig
    calendars: tuple[CalendarConfig, ...] = ()

    def matches_token(self, token: str) -> bool:
        return self.is_private_token(token) or self.is_public_token(token)

    def is_private_token(self, token: str) -> bool:
        return _secret_equals(self.tokens.private, token)

    def is_public_token(self, token: str) -> bool:
        return _secret_equals(self.tokens.public, token)


def _secret_equals(secret: SecretStr, candidate: str) -> bool:
    return hmac.compare_digest(
        secret.get_secret_value().encode("utf-8"),
        candidate.encode("utf-8"),
    )
