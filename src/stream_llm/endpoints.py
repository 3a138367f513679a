"""Starlette integration helpers.

Two ways to serve a session from a Starlette application:

- create_response: fetch style. The endpoint returns the StreamingResponse
  and the callback runs once the session is connected.

      async def events(request: Request) -> Response:
          return create_response(request, lambda session: session.push("hi"))

- SessionEndpoint: raw ASGI. Mounted directly as a Route endpoint, it owns
  the ASGI send callable and keeps the connection open until it closes.

      Route("/events", SessionEndpoint(handler, keep_alive=15.0))
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from starlette.requests import Request
from starlette.responses import Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from .errors import ConfigurationError, StateError
from .session import Session, SessionOptions, create_session

logger = logging.getLogger(__name__)

SessionHandler = Callable[[Session[Any]], Awaitable[None] | None]


def create_response(
    request: Request,
    callback: SessionHandler | None = None,
    *,
    response: Response | None = None,
    options: SessionOptions[Any] | None = None,
    **overrides: Any,
) -> StreamingResponse:
    """Create a fetch-style session and return its response.

    Args:
        request: Inbound request
        callback: Called with the session once it is connected
        response: Optional template whose status and headers are reused
        options: Session options (or pass them as keyword arguments)

    Raises:
        ConfigurationError: If callback is missing or response is not a Response
    """
    if callback is None or not callable(callback):
        raise ConfigurationError("A callback function must be provided to create_response.")
    if response is not None and not isinstance(response, Response):
        raise ConfigurationError(
            f"create_response expects a starlette Response template, got {type(response).__name__}."
        )

    session: Session[Any] = Session(request, response, options, **overrides)

    async def on_connected() -> None:
        try:
            result = callback(session)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error in create_response callback")
            session.close()

    session.once("connected", on_connected)

    return session.response  # type: ignore[return-value]


class SessionEndpoint:
    """ASGI application serving one session per request over raw ASGI send.

    The handler runs once the session is connected. The request stays open
    after the handler returns, until the client disconnects or the handler
    (or anything holding the session) calls session.close().
    """

    def __init__(
        self,
        handler: SessionHandler,
        options: SessionOptions[Any] | None = None,
        **overrides: Any,
    ):
        if not callable(handler):
            raise ConfigurationError("SessionEndpoint requires a handler callable.")
        if options is not None and overrides:
            raise ConfigurationError(
                "Pass session options either as a SessionOptions object "
                "or as keyword arguments, but not both."
            )
        self.handler = handler
        self.options = options
        self.overrides = overrides

    def _session_options(self) -> SessionOptions[Any] | None:
        """Options for one request, with its own copy of the initial state."""
        if self.options is not None:
            return replace(self.options, state=copy.deepcopy(self.options.state))
        if "state" in self.overrides:
            return SessionOptions(
                **{**self.overrides, "state": copy.deepcopy(self.overrides["state"])}
            )
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            raise ConfigurationError(f"SessionEndpoint only serves HTTP, got {scope['type']!r}.")

        request = Request(scope, receive)
        try:
            options = self._session_options()
            if options is not None:
                session: Session[Any] = await create_session(request, send, options)
            else:
                session = await create_session(request, send, **self.overrides)
        except StateError:
            logger.debug(f"Client left before the session connected: {request.url.path}")
            return

        try:
            result = self.handler(session)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Error in session handler for {request.url.path}")
            session.close()

        await session.wait_closed()
