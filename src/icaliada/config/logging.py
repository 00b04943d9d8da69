"""structlog configuration for icaliada.

Two output modes, both on stderr:
- Console (default): key/value lines, colored when stderr is a terminal
- JSON (``--log-json`` or ``log.format: json``): one object per line,
  exceptions rendered as structured ``exception`` lists

Called twice at startup: once from CLI flags so configuration errors are
reported, then again with the resolved ``log`` section.  Only the handler
installed here is replaced; handlers added by others stay attached.
"""

from __future__ import annotations

import logging
import sys

import structlog

_HANDLER_NAME = "icaliada"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Chatty below WARNING regardless of the configured level.
_QUIET_LOGGERS = ("asyncio",)


def _pre_chain() -> list[structlog.types.Processor]:
    """Processors shared by structlog calls and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_chain(log_json: bool) -> list[structlog.types.Processor]:
    strip = structlog.stdlib.ProcessorFormatter.remove_processors_meta
    if log_json:
        return [strip, structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [strip, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def _install_handler(formatter: logging.Formatter) -> None:
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
        existing.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)


def configure_logging(*, level: str = "info", log_json: bool = False) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        level: Level for the ``icaliada`` logger tree; unknown names mean INFO.
            Everything outside that tree stays at WARNING.
        log_json: Render JSON lines instead of console output.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    _install_handler(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=_render_chain(log_json),
        )
    )

    logging.getLogger("icaliada").setLevel(_LEVELS.get(level.lower(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
