"""User supplied log destination."""

from typing import Any, Protocol

from esi_processor.errors import ConfigurationError


class LogWriter(Protocol):
    """Anything with a ``write(message)`` method: a stream, a file, a list wrapper."""

    def write(self, message: str, /) -> Any:
        """Write one message."""
        ...


class _NullWriter:
    def write(self, message: str, /) -> None:
        return None


class LogSink:
    """Pass-through writer for messages meant for the embedding application.

    Operational diagnostics go to structlog; this sink only carries the few
    messages a user explicitly asked to receive (such as the insecure
    allowed-hosts warning). Without a destination writes are dropped.
    """

    def __init__(self, log_to: LogWriter | None = None) -> None:
        """Initialize the sink.

        Args:
            log_to: Destination with a callable ``write``.

        Raises:
            ConfigurationError: If ``log_to`` has no callable ``write``.
        """
        if log_to is None:
            self._output: LogWriter = _NullWriter()
        elif callable(getattr(log_to, "write", None)):
            self._output = log_to
        else:
            msg = "log_to is supposed to be an object with a write method on it"
            raise ConfigurationError(msg)

    def write(self, message: str) -> Any:
        return self._output.write(message)
