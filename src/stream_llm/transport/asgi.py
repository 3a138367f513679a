"""Raw ASGI transport adapters.

Used when the application holds the ASGI send callable itself, e.g. from a
SessionEndpoint mounted on a Starlette Route. The head must be committed
explicitly and every chunk is an http.response.body message with
more_body=True.

Writes are queued on an outbox and sent in order by a single writer task,
so send_chunk never suspends the caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Message, Send

from ..errors import ConfigurationError, StateError
from .base import Connection

logger = logging.getLogger(__name__)


class AsgiConnection(Connection):
    """Streaming-socket style adapter for HTTP/1.x ASGI connections."""

    http_versions: tuple[str, ...] = ("1.0", "1.1")

    def __init__(self, request: Request, send: Send, status_code: int | None = None):
        super().__init__(request, status_code)

        if isinstance(send, Response) or not callable(send):
            raise ConfigurationError(
                f"{type(self).__name__} requires the ASGI send callable as its response, "
                f"got {type(send).__name__}."
            )

        version = request.scope.get("http_version", "1.1")
        if version not in self.http_versions:
            raise ConfigurationError(
                f"{type(self).__name__} handles HTTP/{', HTTP/'.join(self.http_versions)} "
                f"requests, got HTTP/{version}."
            )

        self._send = send
        self._outbox: asyncio.Queue[Message | None] = asyncio.Queue()
        self._head_sent = False
        self._closed = False
        self._writer_task: asyncio.Task[None] | None = None
        self._listener_task: asyncio.Task[None] | None = asyncio.ensure_future(
            self._listen_for_disconnect()
        )

    def _head_headers(self) -> list[tuple[bytes, bytes]]:
        return list(self.headers.raw)

    async def _listen_for_disconnect(self) -> None:
        """Read receive until the client disconnects."""
        while True:
            message = await self.request.receive()
            if message["type"] == "http.disconnect":
                break

        logger.debug(f"Client disconnected: {self.url.path}")
        self.signal.abort()

    async def _drain(self) -> None:
        """Send queued messages in order until the closing sentinel."""
        while True:
            message = await self._outbox.get()
            if message is None:
                break

            try:
                await self._send(message)
            except Exception as e:
                # The socket is gone; treat it as a disconnect
                logger.debug(f"ASGI send failed, closing connection: {e}")
                self.signal.abort()
                break

    def _enqueue(self, message: Message) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.ensure_future(self._drain())
        self._outbox.put_nowait(message)

    def send_head(self) -> None:
        if self._head_sent:
            return
        self._head_sent = True
        self._enqueue(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self._head_headers(),
            }
        )

    def send_chunk(self, chunk: str) -> None:
        if not self._head_sent:
            raise StateError("Response head must be sent before writing chunks.")
        if self._closed:
            return
        self._enqueue(
            {
                "type": "http.response.body",
                "body": chunk.encode("utf-8"),
                "more_body": True,
            }
        )

    def cleanup(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._listener_task is not None:
            self._listener_task.cancel()
            self._listener_task = None

        if self._head_sent:
            self._outbox.put_nowait({"type": "http.response.body", "body": b"", "more_body": False})
        if self._writer_task is not None:
            self._outbox.put_nowait(None)

    async def wait_closed(self) -> None:
        await self.signal.wait()
        if self._writer_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task


# Connection-specific headers are forbidden in HTTP/2 responses (RFC 9113 8.2.2)
HTTP2_FORBIDDEN_HEADERS = frozenset(
    {b"connection", b"keep-alive", b"proxy-connection", b"transfer-encoding", b"upgrade"}
)


class AsgiHttp2Connection(AsgiConnection):
    """Streaming-socket style adapter for HTTP/2 ASGI connections."""

    http_versions = ("2",)

    @property
    def request_headers(self) -> Headers:
        """Request headers without HTTP/2 pseudo-headers."""
        return Headers(
            raw=[(key, value) for key, value in self.request.headers.raw if not key.startswith(b":")]
        )

    def _head_headers(self) -> list[tuple[bytes, bytes]]:
        return [
            (key, value) for key, value in self.headers.raw if key not in HTTP2_FORBIDDEN_HEADERS
        ]
