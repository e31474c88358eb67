"""Observability module for logging."""

from esi_processor.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from esi_processor.observability.sink import LogSink, LogWriter


__all__ = [
    "LogSink",
    "LogWriter",
    "bind_request_context",
    "clear_request_context",
    "configure_logging",
    "get_logger",
]
