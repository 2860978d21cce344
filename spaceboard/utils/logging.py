"""Structured logging for the cache layer, built on structlog.

One processor chain feeds either a coloured ConsoleRenderer for local
development or a JSONRenderer for production, chosen from ``APP_ENV``
(default ``"development"``) or forced via ``json_output``.  Standard-library
``logging`` goes through the same formatter, so httpx and uvicorn lines
match cache-layer events.

Cache events carry a few recurring fields:

``tier``
    Bound once per tier instance via ``get_logger(__name__, tier=...)``.
``request_id`` / ``method`` / ``path``
    Bound for the duration of an HTTP request by :func:`request_context`,
    so every cache event triggered by that request can be correlated.
``key`` / ``url``
    Cache keys and asset URLs; long values are shortened by
    :func:`shorten_cache_keys` before rendering.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Cache keys embed full origin URLs; keep log lines readable.
MAX_KEY_LENGTH = 120
_KEY_FIELDS = ("key", "url")


def shorten_cache_keys(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Truncate oversized ``key`` and ``url`` fields, keeping the tail."""
    for field in _KEY_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str) and len(value) > MAX_KEY_LENGTH:
            event_dict[field] = "..." + value[-(MAX_KEY_LENGTH - 3) :]
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        shorten_cache_keys,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        # The cache hot path logs a debug event per lookup; drop them early.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())
    # Origin fetches are already logged as cache_miss_fetching.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """Get a named structlog logger with *initial_values* bound to every event.

    If structlog has not been configured yet, calls configure_logging() with defaults.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name, **initial_values)


@contextmanager
def request_context(request_id: str, **fields: Any) -> Iterator[None]:
    """Bind *request_id* and *fields* to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield
