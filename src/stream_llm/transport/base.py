"""Connection abstraction base classes.

A Connection hides the differences between the ways an ASGI application can
hold an open response:

- AsgiConnection: Request + raw ASGI send, HTTP/1.x (explicit head commit)
- AsgiHttp2Connection: Request + raw ASGI send over HTTP/2
- StreamingConnection: Request + optional template Response, fetch style
  (the framework sends a StreamingResponse we feed)

Every adapter reports client disconnects through its AbortSignal so the
owning Session reacts the same way regardless of transport.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence

from starlette.datastructures import URL, Headers, MutableHeaders
from starlette.requests import Request

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_CODE = 200
DEFAULT_REQUEST_METHOD = "GET"
DEFAULT_RESPONSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

HeaderValues = Mapping[str, str | Sequence[str] | None]


def apply_headers(source: HeaderValues, target: MutableHeaders) -> None:
    """Apply headers onto target, replacing rather than appending.

    Sequence values become repeated headers; None values are skipped.
    """
    for key, value in source.items():
        if value is None:
            continue

        del target[key]

        if isinstance(value, str):
            target[key] = value
        else:
            for item in value:
                target.append(key, item)


class AbortSignal:
    """One-shot cancellation signal shared by a Connection and its Session."""

    def __init__(self) -> None:
        self._aborted = False
        self._listeners: list[Callable[[], None]] = []
        self._event: asyncio.Event | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_listener(self, listener: Callable[[], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def abort(self) -> None:
        """Fire the signal. Only the first call notifies listeners."""
        if self._aborted:
            return
        self._aborted = True

        if self._event is not None:
            self._event.set()

        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Error in abort listener")

    async def wait(self) -> None:
        """Wait until the signal fires."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()


class Connection(ABC):
    """Uniform capability set over one open response.

    Attributes:
        request: The inbound Starlette request
        url: Parsed request URL
        headers: Response headers committed by send_head
        status_code: Response status committed by send_head
        signal: Fires once when the client goes away or the server closes
    """

    def __init__(self, request: Request, status_code: int | None = None):
        if not isinstance(request, Request):
            raise ConfigurationError(
                f"Expected a starlette Request, got {type(request).__name__}. "
                "Must be a Request paired with an ASGI send callable, "
                "or a Request with an optional Response template."
            )

        self.request = request
        self.url: URL = request.url
        self.status_code = status_code or DEFAULT_RESPONSE_CODE
        self.headers = MutableHeaders()
        apply_headers(DEFAULT_RESPONSE_HEADERS, self.headers)
        self.signal = AbortSignal()
        self._claimed = False

    @property
    def method(self) -> str:
        return self.request.method or DEFAULT_REQUEST_METHOD

    @property
    def request_headers(self) -> Headers:
        """Inbound request headers."""
        return self.request.headers

    def claim(self) -> None:
        """Mark this connection as owned by a session."""
        if self._claimed:
            raise ConfigurationError("Connection is already owned by another session.")
        self._claimed = True

    def close(self) -> None:
        """Close from the server side; listeners see it as a disconnect."""
        self.signal.abort()

    async def wait_closed(self) -> None:
        """Wait until the connection is closed and pending writes are done."""
        await self.signal.wait()

    @abstractmethod
    def send_head(self) -> None:
        """Commit status and headers. Call once, before any chunk."""
        ...

    @abstractmethod
    def send_chunk(self, chunk: str) -> None:
        """Queue raw text for the client, preserving order. Never blocks."""
        ...

    @abstractmethod
    def cleanup(self) -> None:
        """Release listeners and handles. Safe to call more than once."""
        ...
