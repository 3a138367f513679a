"""Session - one client's open event stream.

A Session owns exactly one Connection and one EventBuffer and runs the
per-client lifecycle:

    pending -> connected -> disconnected (terminal)

Bootstrap is scheduled on the event loop so the constructor returns before
any I/O. Disconnection is driven only by the connection's AbortSignal,
whether the client went away or the server called close().

Example (fetch style, inside a Starlette endpoint):

    async def events(request: Request) -> Response:
        session = await create_session(request)
        session.push({"status": "ready"}, "status")
        return session.response

Example (raw ASGI send, see SessionEndpoint for the packaged version):

    session = await create_session(Request(scope, receive), send)
    session.push("Hello!")
    await session.wait_closed()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from starlette.datastructures import URL
from starlette.requests import Request
from starlette.responses import StreamingResponse

from .buffer import EventBuffer, Source, consume, make_event_id
from .emitter import EventEmitter
from .encoding import DEFAULT_EVENT, Sanitizer, Serializer, encode_comment, generate_event_id
from .errors import ConfigurationError, StateError
from .transport import Connection, apply_headers, create_connection
from .transport.base import HeaderValues

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")

DEFAULT_RETRY = 2000  # milliseconds, sent to the client as-is
DEFAULT_KEEP_ALIVE = 10.0  # seconds

LAST_EVENT_ID_HEADER = "last-event-id"
LAST_EVENT_ID_PARAMS = ("lastEventId", "evs_last_event_id")

# Preamble sizes expected by EventSource polyfills behind buffering proxies
PADDING_PARAM = "padding"
PADDING_SIZE = 2049
PREAMBLE_PARAM = "evs_preamble"
PREAMBLE_SIZE = 2056

BatchCallback = Callable[[EventBuffer], Awaitable[None] | None]
Transform = Callable[[Any], Any]


class SessionState(str, Enum):
    """Session lifecycle states."""

    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class SessionOptions(Generic[StateT]):
    """Configuration for a session."""

    # Seed last_event_id from the client's Last-Event-ID header/query param
    trust_client_event_id: bool = True
    # Reconnection time sent to the client in milliseconds, None to omit
    retry: int | None = DEFAULT_RETRY
    # Heartbeat interval in seconds, None to disable
    keep_alive: float | None = DEFAULT_KEEP_ALIVE
    status_code: int | None = None
    headers: HeaderValues = field(default_factory=dict)
    state: StateT | None = None
    serializer: Serializer | None = None
    sanitizer: Sanitizer | None = None


def _resolve_options(options: SessionOptions | None, overrides: dict[str, Any]) -> SessionOptions:
    if options is not None:
        if overrides:
            raise ConfigurationError(
                "Pass session options either as a SessionOptions object "
                "or as keyword arguments, but not both."
            )
    else:
        try:
            options = SessionOptions(**overrides)
        except TypeError as e:
            raise ConfigurationError(f"Invalid session option: {e}") from e

    if options.keep_alive is not None and options.keep_alive <= 0:
        raise ConfigurationError(
            f"keep_alive must be a positive number of seconds or None, got {options.keep_alive}."
        )
    return options


class Session(EventEmitter, Generic[StateT]):
    """Server side of one open event stream.

    Notifications (see EventEmitter.on):
    - "connected": bootstrap finished, pushes are accepted
    - "disconnected": the connection closed; emitted once
    - "push" (data, event, event_id): an event was written
    """

    def __init__(
        self,
        request: Request | Connection,
        response: Any = None,
        options: SessionOptions[StateT] | None = None,
        **overrides: Any,
    ):
        super().__init__()
        options = _resolve_options(options, overrides)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise ConfigurationError("Sessions must be created inside a running event loop.") from e

        if isinstance(request, Connection):
            if response is not None:
                raise ConfigurationError(
                    "A Connection already holds its response; do not pass one as well."
                )
            connection = request
            if options.status_code is not None:
                connection.status_code = options.status_code
        else:
            connection = create_connection(request, response, options.status_code)

        connection.claim()
        self._connection = connection

        if options.headers:
            apply_headers(options.headers, connection.headers)

        self._last_event_id = self._client_event_id() if options.trust_client_event_id else ""

        self.state: StateT = options.state if options.state is not None else {}  # type: ignore[assignment]

        self._retry = options.retry
        self._keep_alive = options.keep_alive
        self._buffer = EventBuffer(options.serializer, options.sanitizer)
        self._lifecycle = SessionState.PENDING
        self._keep_alive_task: asyncio.Task[None] | None = None

        connection.signal.add_listener(self._on_disconnected)
        self._bootstrap = loop.call_soon(self._initialize)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _client_event_id(self) -> str:
        header = self._connection.request_headers.get(LAST_EVENT_ID_HEADER)
        if header is not None:
            return header

        params = self._connection.request.query_params
        for name in LAST_EVENT_ID_PARAMS:
            value = params.get(name)
            if value is not None:
                return value
        return ""

    def _initialize(self) -> None:
        if self._lifecycle is not SessionState.PENDING:
            return
        if self._connection.signal.aborted:
            self._on_disconnected()
            return

        self._connection.send_head()

        params = self._connection.request.query_params
        if PADDING_PARAM in params:
            self._buffer.comment(" " * PADDING_SIZE)
        if PREAMBLE_PARAM in params:
            self._buffer.comment(" " * PREAMBLE_SIZE)

        if self._retry is not None:
            self._buffer.retry(self._retry)

        self._flush()

        if self._keep_alive is not None:
            self._keep_alive_task = asyncio.ensure_future(self._keep_alive_loop(self._keep_alive))

        self._lifecycle = SessionState.CONNECTED
        logger.debug(f"Session connected: {self._connection.url.path}")
        self._emit("connected")

    def _on_disconnected(self) -> None:
        if self._lifecycle is SessionState.DISCONNECTED:
            return

        self._connection.signal.remove_listener(self._on_disconnected)
        self._bootstrap.cancel()
        self._connection.cleanup()

        if self._keep_alive_task is not None:
            self._keep_alive_task.cancel()

        self._lifecycle = SessionState.DISCONNECTED
        logger.debug(f"Session disconnected: {self._connection.url.path}")
        self._emit("disconnected")

    async def _keep_alive_loop(self, interval: float) -> None:
        """Write heartbeat comments straight to the connection.

        Bypasses the buffer so a batch being composed is not flushed early.
        """
        while True:
            await asyncio.sleep(interval)
            self._connection.send_chunk(encode_comment())

    def _flush(self) -> None:
        last_id = self._buffer.last_event_id
        text = self._buffer.drain()
        if last_id is not None:
            self._last_event_id = last_id
        if text:
            self._connection.send_chunk(text)

    def _require_connected(self, operation: str) -> None:
        if self._lifecycle is SessionState.CONNECTED:
            return
        if self._lifecycle is SessionState.PENDING:
            raise StateError(
                f"Cannot {operation} on a session that has not connected yet. "
                "Await create_session() or wait for the 'connected' notification."
            )
        raise StateError(f"Cannot {operation} on a disconnected session.")

    def close(self) -> None:
        """Close the stream from the server side."""
        self._connection.close()

    async def wait_closed(self) -> None:
        """Wait until the session is disconnected and the transport is done."""
        await self._connection.wait_closed()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def lifecycle(self) -> SessionState:
        return self._lifecycle

    @property
    def is_connected(self) -> bool:
        return self._lifecycle is SessionState.CONNECTED

    @property
    def last_event_id(self) -> str:
        """Id of the last event sent, or the client's resumption id before any push."""
        return self._last_event_id

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def request(self) -> Request:
        return self._connection.request

    @property
    def response(self) -> StreamingResponse | None:
        """Response to return from the endpoint (fetch style only)."""
        return getattr(self._connection, "response", None)

    @property
    def url(self) -> URL:
        return self._connection.url

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def push(
        self,
        data: Any,
        event: str = DEFAULT_EVENT,
        event_id: str | None = None,
    ) -> Session[StateT]:
        """Send one event to the client.

        Args:
            data: Payload (non-strings are serialized, JSON by default)
            event: Event type name
            event_id: Event id; a UUID is generated when omitted

        Raises:
            StateError: If the session is not connected
            SerializationError: If the payload cannot be serialized
        """
        self._require_connected("push")

        if event_id is None:
            event_id = generate_event_id()

        self._buffer.push(data, event, event_id)
        self._flush()

        self._last_event_id = event_id
        self._emit("push", data, event, event_id)
        return self

    async def stream(
        self,
        source: Source,
        *,
        event: str = "stream",
        event_id_prefix: str = "",
        transform: Transform | None = None,
    ) -> None:
        """Push chunks from an upstream producer as they arrive.

        Usage:
            await session.stream(
                completion,
                event="llm-chunk",
                transform=lambda chunk: chunk.choices[0].delta.content or "",
            )

        Raises:
            TransportError: If the source fails
            StateError: If the session disconnects mid-stream
        """
        self._require_connected("stream")

        async def forward(chunk: Any, index: int) -> None:
            data = transform(chunk) if transform is not None else chunk
            if inspect.isawaitable(data):
                data = await data
            self.push(data, event, make_event_id(event_id_prefix, index))

        await consume(source, forward)

    async def iterate(
        self,
        source: Source,
        *,
        event: str = DEFAULT_EVENT,
        event_id_prefix: str = "",
    ) -> None:
        """Push every value of a sync or async iterable, one write each."""
        self._require_connected("iterate")

        def forward(value: Any, index: int) -> None:
            self.push(value, event, make_event_id(event_id_prefix, index))

        await consume(source, forward)

    async def batch(self, callback: BatchCallback) -> None:
        """Compose several frames and send them in a single write.

        Usage:
            await session.batch(lambda buffer: buffer.push("a").push("b"))
        """
        self._require_connected("batch")

        try:
            result = callback(self._buffer)
            if inspect.isawaitable(result):
                await result
            self._require_connected("batch")
        except BaseException:
            self._buffer.clear()
            raise

        self._flush()


async def create_session(
    request: Request | Connection,
    response: Any = None,
    options: SessionOptions[StateT] | None = None,
    **overrides: Any,
) -> Session[StateT]:
    """Create a session and wait until it is connected.

    Raises:
        StateError: If the client disconnects before bootstrap completes
    """
    session: Session[StateT] = Session(request, response, options, **overrides)

    loop = asyncio.get_running_loop()
    ready: asyncio.Future[bool] = loop.create_future()

    def settle(connected: bool) -> None:
        if not ready.done():
            ready.set_result(connected)

    unsubscribers = [
        session.once("connected", lambda: settle(True)),
        session.once("disconnected", lambda: settle(False)),
    ]
    try:
        connected = await ready
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()

    if not connected:
        raise StateError("Client disconnected before the session connected.")
    return session
