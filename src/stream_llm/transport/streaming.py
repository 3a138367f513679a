"""Fetch-style transport adapter.

The session writes into an in-memory queue that backs a StreamingResponse.
The endpoint returns that response and the framework sends the head when it
starts streaming, so send_head is a no-op here.

    async def events(request: Request) -> Response:
        return create_response(request, on_connected)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from starlette.requests import Request
from starlette.responses import Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from ..errors import ConfigurationError
from .base import Connection, apply_headers

# Headers that describe the template's own body, not the event stream
_TEMPLATE_SKIP_HEADERS = frozenset({"content-length", "content-type", "transfer-encoding"})


class EventStreamResponse(StreamingResponse):
    """StreamingResponse fed by a StreamingConnection.

    Shares the connection's header list and aborts its signal once the
    framework is done with the response, however that happens.
    """

    def __init__(self, connection: StreamingConnection, content: AsyncIterator[bytes]):
        super().__init__(content, status_code=connection.status_code)
        self._connection = connection
        self.raw_headers = connection.headers.raw

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self.status_code = self._connection.status_code
        try:
            await super().__call__(scope, receive, send)
        finally:
            self._connection.signal.abort()


class StreamingConnection(Connection):
    """Fetch-style adapter: Request plus an optional template Response."""

    def __init__(
        self,
        request: Request,
        response: Response | None = None,
        status_code: int | None = None,
    ):
        if response is not None and not isinstance(response, Response):
            raise ConfigurationError(
                "StreamingConnection requires a starlette Response template or None, "
                f"got {type(response).__name__}."
            )

        template_status = response.status_code if response is not None else None
        super().__init__(request, status_code or template_status)

        if response is not None:
            template: dict[str, list[str]] = {}
            for key, value in response.headers.items():
                if key in _TEMPLATE_SKIP_HEADERS:
                    continue
                template.setdefault(key, []).append(value)
            apply_headers(template, self.headers)

        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self.response = EventStreamResponse(self, self._body())

    async def _body(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    break
                yield chunk.encode("utf-8")
        finally:
            self.signal.abort()

    def send_head(self) -> None:
        # Headers go out when the framework starts sending self.response
        pass

    def send_chunk(self, chunk: str) -> None:
        if self._closed:
            return
        self._queue.put_nowait(chunk)

    def cleanup(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
