"""Exception hierarchy for startup failures.

Every error here is fatal and operator-fixable.  They are raised where the
failure happens and converted to a message plus exit code only at the CLI
boundary.

INVARIANT: Configuration errors are raised before any socket is opened.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class IcaliadaError(Exception):
    """Base class for all icaliada startup errors."""

    exit_code: int = 1


class ConfigError(IcaliadaError):
    """Configuration could not be loaded or validated."""

    exit_code = 2


class ConfigNotFound(ConfigError):
    """A required configuration file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class ConfigParseError(ConfigError):
    """A configuration file exists but is not a valid YAML mapping.

    ``line`` and ``column`` are 1-based and only set when the parser
    reports a position.
    """

    def __init__(
        self,
        path: Path,
        reason: str,
        *,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.path = path
        self.reason = reason
        self.line = line
        self.column = column
        where = str(path)
        if line is not None:
            where = f"{where}:{line}"
            if column is not None:
                where = f"{where}:{column}"
        super().__init__(f"Invalid configuration in {where}: {reason}")


class ConfigValidationError(ConfigError):
    """The merged configuration violates a field constraint.

    Attributes:
        field: Dotted name of the first offending field (e.g. ``server.port``).
        errors: Every error entry reported by pydantic, for diagnostics.
    """

    def __init__(
        self,
        field: str,
        reason: str,
        *,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.field = field
        self.reason = reason
        self.errors = errors or []
        super().__init__(f"Invalid value for '{field}': {reason}")


class BindError(IcaliadaError):
    """The listener could not be bound (address in use, permission denied, ...)."""

    exit_code = 3

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        self.host = host
        self.port = port
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(f"Cannot bind {host}:{port}: {reason}")
