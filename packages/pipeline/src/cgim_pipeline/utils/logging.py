"""
utils/logging.py — structlog setup for the CGIM engine.

stdout belongs to CLI results (JSON/CSV), so every log line goes to stderr
by default. Renderer and level come from settings.log_format /
settings.log_level unless overridden.

Usage:
    from cgim_pipeline.utils.logging import configure_logging, get_logger, load_context

    configure_logging()
    log = get_logger(__name__, pipeline="annual_series")

    with load_context(entity="ABAL", year=2024):
        log.info("tree_built", categories=7)   # carries entity and year
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

import structlog

from cgim_shared.config import settings

# stdlib loggers that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "filelock")


_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _level_number(level: str) -> int:
    return _LEVELS.get(level.upper(), logging.INFO)


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
    *,
    stream: IO[str] | None = None,
) -> None:
    """
    Configure structlog (and stdlib logging) for a CLI or batch process.

    Args:
        log_level:  "DEBUG" | "INFO" | "WARNING" | "ERROR"; default settings.log_level.
        log_format: "json" | "console"; default settings.log_format.
        stream:     Destination; default sys.stderr.
    """
    level = _level_number(log_level or settings.log_level)
    fmt = log_format or settings.log_format
    out = stream or sys.stderr

    logging.basicConfig(format="%(message)s", stream=out, level=level)
    logging.getLogger().setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """
    Logger named after the module, with ``initial_values`` on every event.

    The proxy resolves the structlog configuration on first use, so module
    level loggers created at import still follow configure_logging().
    """
    return structlog.get_logger(name, **initial_values)  # type: ignore[return-value]


@contextmanager
def load_context(**values: Any) -> Iterator[None]:
    """Bind ``values`` to every event logged inside the block, across awaits."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
