"""Structured logging for page assembly.

Every include of a page is resolved in its own asyncio task. Tasks copy the
context variables of their creator, so binding the request context once
before ``process`` tags the events of all fragment fetches of that page.
"""

import logging
import sys
from typing import TextIO

import structlog


REQUEST_CONTEXT_KEYS = ("request_id", "source")

# stdlib loggers of the HTTP stack, one line per fragment request
HTTP_LIBRARY_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Send processor events to ``output`` as JSON lines or console text.

    The per-request HTTP logs of httpx are only let through at DEBUG; at
    any other level they would repeat each ``fetch_complete`` event.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)
    http_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in HTTP_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_request_context(request_id: str, source: str | None = None) -> None:
    """Tag subsequent events with the page being assembled.

    Args:
        request_id: Identifier of this ``process`` run.
        source: Where the page came from (request path or input file).
    """
    context = {"request_id": request_id}
    if source is not None:
        context["source"] = source
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*REQUEST_CONTEXT_KEYS)
