"""Client-side event-stream consumer.

Handles:
- Parsing the text/event-stream format incrementally (WHATWG rules)
- Automatic reconnection with backoff, honouring server retry directives
- Resumption by resending Last-Event-ID

Usage:
    async with EventSourceClient("http://localhost:8000/ticker") as source:
        async for event in source:
            print(event.event, event.data)
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from types import TracebackType

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

BOM = "\ufeff"
_LINE_END = re.compile(r"\r\n|\r|\n")


class ServerSentEvent(BaseModel):
    """One dispatched event."""

    event: str = "message"
    data: str = ""
    id: str | None = None
    retry: int | None = None


class EventStreamParser:
    """Incremental parser for the text/event-stream format.

    Feed decoded text in arbitrary pieces; completed events are returned as
    soon as their terminating blank line arrives.
    """

    def __init__(self) -> None:
        # Text of the current unterminated line, in arrival order
        self._pending: list[str] = []
        self._started = False
        self._data: list[str] = []
        self._event = ""
        self._block_id: str | None = None
        self.last_event_id = ""
        self.retry: int | None = None

    def feed(self, text: str) -> list[ServerSentEvent]:
        """Consume text and return the events it completed."""
        if not text:
            return []
        if not self._started:
            self._started = True
            if text.startswith(BOM):
                text = text[1:]

        # A held-back \r is re-read so a following \n joins it as one line end
        if self._pending and self._pending[-1].endswith("\r"):
            self._pending[-1] = self._pending[-1][:-1]
            text = "\r" + text

        events: list[ServerSentEvent] = []
        position = 0
        for match in _LINE_END.finditer(text):
            # A trailing \r may be the first half of \r\n; wait for more input
            if match.group() == "\r" and match.end() == len(text):
                break
            line = text[position : match.start()]
            if self._pending:
                self._pending.append(line)
                line = "".join(self._pending)
                self._pending = []
            position = match.end()

            event = self._process_line(line)
            if event is not None:
                events.append(event)

        if position < len(text):
            self._pending.append(text[position:])
        return events

    def _process_line(self, line: str) -> ServerSentEvent | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self._block_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if self._block_id is not None:
            self.last_event_id = self._block_id

        data, event = self._data, self._event
        self._data, self._event, self._block_id = [], "", None

        if not data:
            return None

        return ServerSentEvent(
            event=event or "message",
            data="\n".join(data),
            id=self.last_event_id or None,
            retry=self.retry,
        )


def parse_events(text: str) -> list[ServerSentEvent]:
    """Parse a complete event-stream text."""
    return EventStreamParser().feed(text)


@dataclass
class ClientConfig:
    """Client configuration."""

    timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)

    # Reconnection settings
    reconnect: bool = True
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    reconnect_backoff: float = 2.0


class EventSourceClient:
    """Async iterator over events from an event-stream endpoint."""

    def __init__(
        self,
        url: str,
        config: ClientConfig | None = None,
        last_event_id: str = "",
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.config = config or ClientConfig()
        self.last_event_id = last_event_id
        self._client = client
        self._owns_client = client is None
        self._response: httpx.Response | None = None
        self._closed = False
        self._reconnect_delay = self.config.reconnect_delay

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, read=None),  # No read timeout for streams
            )
        return self._client

    async def _connect(self) -> httpx.Response:
        client = await self._ensure_client()
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        headers.update(self.config.headers)
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id

        response = await client.send(client.build_request("GET", self.url, headers=headers), stream=True)
        if response.is_error:
            await response.aclose()
            response.raise_for_status()
        return response

    async def __aiter__(self) -> AsyncIterator[ServerSentEvent]:
        while not self._closed:
            parser = EventStreamParser()
            parser.last_event_id = self.last_event_id
            try:
                response = await self._connect()
                self._response = response
                self._reconnect_delay = self.config.reconnect_delay  # Reset on success

                async for text in response.aiter_text():
                    if self._closed:
                        break
                    for event in parser.feed(text):
                        self.last_event_id = parser.last_event_id
                        yield event

                    if parser.retry is not None:
                        self._reconnect_delay = parser.retry / 1000

                await response.aclose()

            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                if self._closed:
                    break
                if not self.config.reconnect:
                    raise
                logger.warning(f"Event stream lost: {e}. Reconnecting in {self._reconnect_delay}s...")
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(
                    self._reconnect_delay * self.config.reconnect_backoff,
                    self.config.max_reconnect_delay,
                )
                continue

            # Server ended the stream cleanly
            if self._closed or not self.config.reconnect:
                break
            await asyncio.sleep(self._reconnect_delay)

    async def close(self) -> None:
        """Close the event stream."""
        self._closed = True
        if self._response is not None:
            await self._response.aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> EventSourceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
