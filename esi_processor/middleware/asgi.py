"""ASGI middleware resolving includes in outgoing responses.

Framework agnostic: wraps any ASGI application (FastAPI, Starlette, plain
callables) and only touches uncompressed HTTP responses with a markup
content type.
"""

import codecs
import re
import uuid
from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

import structlog

from esi_processor.engine.models import ProcessOptions
from esi_processor.engine.processor import ESIProcessor
from esi_processor.observability.logging import (
    bind_request_context,
    clear_request_context,
)


logger = structlog.get_logger()

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

PROCESSABLE_CONTENT_TYPE = re.compile(r"(text/)|(/xml)|(\+xml)", re.IGNORECASE)
_CHARSET = re.compile(r"charset=([\w.-]+)", re.IGNORECASE)

# scope["state"] key holding per-request ProcessOptions or a mapping
OPTIONS_STATE_KEY = "esi_options"


class ESIMiddleware:
    """Buffers markup responses and runs them through an ``ESIProcessor``.

    Per-request options (forwarded headers, base URL) are read from
    ``scope["state"]["esi_options"]``, which is where ``request.state.esi_options``
    lands in Starlette based frameworks.
    """

    def __init__(
        self,
        app: ASGIApp,
        processor: ESIProcessor | None = None,
        **processor_kwargs: Any,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: Downstream ASGI application.
            processor: Processor to use; built from ``processor_kwargs`` if None.
            **processor_kwargs: ``ESIProcessor`` keyword arguments.
        """
        self.app = app
        self.processor = processor or ESIProcessor(**processor_kwargs)
        self._log = logger.bind(component="asgi_middleware")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_message: Message | None = None
        chunks: list[bytes] = []
        passthrough = False

        async def buffered_send(message: Message) -> None:
            nonlocal start_message, passthrough

            if message["type"] == "http.response.start":
                start_message = message
                passthrough = not _is_processable(message)
                if passthrough:
                    await send(message)
                return

            if message["type"] != "http.response.body" or passthrough:
                await send(message)
                return

            chunks.append(message.get("body", b""))
            if message.get("more_body", False):
                return

            if start_message is None:
                msg = "response body sent before http.response.start"
                raise RuntimeError(msg)
            await self._send_processed(scope, start_message, b"".join(chunks), send)

        await self.app(scope, receive, buffered_send)

    async def _send_processed(
        self, scope: Scope, start_message: Message, body: bytes, send: Send
    ) -> None:
        headers = list(start_message.get("headers", []))
        charset = _charset(headers)
        request_id = uuid.uuid4().hex[:12]

        bind_request_context(request_id, source=scope.get("path"))
        try:
            processed = await self.processor.process(
                body.decode(charset, errors="replace"), _options_from_scope(scope)
            )
        finally:
            clear_request_context()

        payload = processed.encode(charset, errors="replace")
        self._log.debug(
            "response_processed",
            path=scope.get("path"),
            bytes_in=len(body),
            bytes_out=len(payload),
        )

        headers = [
            (name, value) for name, value in headers if name.lower() != b"content-length"
        ]
        headers.append((b"content-length", str(len(payload)).encode("latin-1")))

        await send({**start_message, "headers": headers})
        await send({"type": "http.response.body", "body": payload, "more_body": False})


def _header(headers: list[tuple[bytes, bytes]], name: bytes) -> str | None:
    for key, value in headers:
        if key.lower() == name:
            return value.decode("latin-1")
    return None


def _is_processable(start_message: Message) -> bool:
    headers = list(start_message.get("headers", []))
    # compressed bodies are not text until something downstream decodes them
    content_encoding = _header(headers, b"content-encoding")
    if content_encoding and content_encoding.strip().lower() != "identity":
        return False
    content_type = _header(headers, b"content-type")
    return bool(content_type and PROCESSABLE_CONTENT_TYPE.search(content_type))


def _charset(headers: list[tuple[bytes, bytes]]) -> str:
    content_type = _header(headers, b"content-type") or ""
    match = _CHARSET.search(content_type)
    if match is None:
        return "utf-8"
    try:
        return codecs.lookup(match.group(1)).name
    except LookupError:
        logger.warning("unknown_charset", charset=match.group(1))
        return "utf-8"


def _options_from_scope(scope: Scope) -> ProcessOptions | None:
    state = scope.get("state") or {}
    options = state.get(OPTIONS_STATE_KEY)
    if options is None:
        return None
    return ProcessOptions.coerce(options)
