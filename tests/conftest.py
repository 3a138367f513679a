"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from starlette.requests import Request
from starlette.types import Message

from stream_llm.transport import Connection

HeaderInput = dict[str, str] | list[tuple[str, str]]


def build_request(
    path: str = "/events",
    query: str = "",
    headers: HeaderInput | None = None,
    http_version: str = "1.1",
    receive: Callable[[], Awaitable[Message]] | None = None,
) -> Request:
    """Build a Starlette request from a minimal HTTP scope."""
    items = headers.items() if isinstance(headers, dict) else (headers or [])
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": http_version,
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query.encode(),
        "root_path": "",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in items],
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
    if receive is None:
        return Request(scope)
    return Request(scope, receive)


class RecordingConnection(Connection):
    """Connection that records what a session writes, synchronously."""

    def __init__(self, request: Request, status_code: int | None = None):
        super().__init__(request, status_code)
        self.heads = 0
        self.chunks: list[str] = []
        self.cleanups = 0

    def send_head(self) -> None:
        self.heads += 1

    def send_chunk(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def cleanup(self) -> None:
        self.cleanups += 1

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    def disconnect(self) -> None:
        """Simulate the client going away."""
        self.signal.abort()


class FakeAsgiPeer:
    """ASGI server stand-in: records sent messages, disconnects on demand."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self._disconnected = asyncio.Event()

    async def receive(self) -> Message:
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message: Message) -> None:
        self.messages.append(message)

    def disconnect(self) -> None:
        self._disconnected.set()

    @property
    def body_messages(self) -> list[Message]:
        return [m for m in self.messages if m["type"] == "http.response.body"]

    @property
    def text(self) -> str:
        return b"".join(m["body"] for m in self.body_messages).decode("utf-8")


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Factory for Starlette requests."""
    return build_request


@pytest.fixture
def make_connection() -> Callable[..., RecordingConnection]:
    """Factory for recording connections."""

    def factory(status_code: int | None = None, **request_kwargs: Any) -> RecordingConnection:
        return RecordingConnection(build_request(**request_kwargs), status_code)

    return factory


@pytest.fixture
def asgi_peer() -> FakeAsgiPeer:
    """A single fake ASGI client."""
    return FakeAsgiPeer()


@pytest.fixture
def settle() -> Callable[..., Awaitable[None]]:
    """Let queued callbacks and tasks run."""
    return _settle


@pytest.fixture
def make_asgi_peer() -> Callable[[], FakeAsgiPeer]:
    """Factory for tests that need several ASGI clients at once."""
    return FakeAsgiPeer
