"""Structured logging for the photostream namespace.

Every module logs through a structlog logger wrapping a standard library
logger under ``photostream``. The library never touches the root logger:
applications configure their own handlers, or call setup_logging() to
attach one to the ``photostream`` namespace only.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from photostream.core.config import settings

LOGGER_NAMESPACE = "photostream"


class _NamespaceHandler(logging.StreamHandler):
    """Handler installed by setup_logging(), replaced on reconfiguration."""


def logger_name(name: str | None = None) -> str:
    """Qualify ``name`` under the photostream namespace."""
    if not name or name == LOGGER_NAMESPACE:
        return LOGGER_NAMESPACE
    if name.startswith(LOGGER_NAMESPACE + "."):
        return name
    return f"{LOGGER_NAMESPACE}.{name}"


def setup_logging(level: int | str | None = None, *, stream: IO[str] | None = None) -> None:
    """Render structured events and send the namespace's records to ``stream``.

    Args:
        level: Level for the ``photostream`` logger (default from settings).
        stream: Output stream (default stdout).
    """
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    namespace_logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(namespace_logger.handlers):
        if isinstance(handler, _NamespaceHandler):
            namespace_logger.removeHandler(handler)
    handler = _NamespaceHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    namespace_logger.addHandler(handler)
    namespace_logger.setLevel(level)
    namespace_logger.propagate = False

    # The discovery cache warns on every build without oauth2client installed
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger under the photostream namespace.

    Args:
        name: Logger name, usually ``__name__``. Names outside the
            namespace are prefixed with ``photostream.``.

    Returns:
        A lazily bound structlog logger over the standard library logger.
    """
    return structlog.wrap_logger(
        logging.getLogger(logger_name(name)),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
