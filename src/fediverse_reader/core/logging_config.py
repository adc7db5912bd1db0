"""Structured logging for the service, built on structlog.

:func:`configure_logging` is called by the app factory.  Federation modules
keep using ``logging.getLogger(__name__)``; their records pass through the
same processor chain as structlog's own, so both come out as one JSON object
per line (or coloured console lines at ``DEBUG``).

Anything bound with ``structlog.contextvars`` (the request middleware binds
``request_id``, ``method`` and ``path``) is merged into every record, stdlib
ones included.  That is how the fetches and probes behind one API call are
correlated.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "[REDACTED]"

_SECRET_KEYS: frozenset[str] = frozenset({
    "access_token",
    "mastodon_access_token",
    "authorization",
})
"""Lower-cased event keys whose values never reach a renderer: the search
server's bearer token, under either name, and the header that carries it."""

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")
"""Loggers held at WARNING outside DEBUG.  httpx logs every request at INFO
and the request middleware already logs each API call."""


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask secret values, including one level down (``headers={...}``)."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in _SECRET_KEYS else v
                for k, v in value.items()
            }
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one stdout handler.

    Safe to call repeatedly: the root handler is replaced, not added.

    Args:
        log_level: Level name, case-insensitive.  ``DEBUG`` also switches to
            the console renderer and un-silences the HTTP client loggers.
    """
    level_name = log_level.upper()
    debug = level_name == "DEBUG"
    shared = _shared_processors()

    renderer: Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
