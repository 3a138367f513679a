"""Select the Connection adapter for a request/response pair.

This is the single place where the concrete shape of the transport objects
is inspected; everything above it only sees a Connection.
"""

from __future__ import annotations

from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from ..errors import ConfigurationError
from .asgi import AsgiConnection, AsgiHttp2Connection
from .base import Connection
from .streaming import StreamingConnection


def create_connection(
    request: Any,
    response: Any = None,
    status_code: int | None = None,
) -> Connection:
    """Build the adapter matching the given pair.

    - Request + None or Response template -> StreamingConnection
    - Request + ASGI send over HTTP/2 -> AsgiHttp2Connection
    - Request + ASGI send otherwise -> AsgiConnection

    Raises:
        ConfigurationError: If the pair matches none of the shapes
    """
    if not isinstance(request, Request):
        raise ConfigurationError(
            "Malformed request given to session constructor. "
            "Must be a starlette Request paired with an ASGI send callable, "
            "a starlette Request with an optional Response, or a Connection."
        )

    # Response instances are ASGI callables too, so test for them first
    if response is None or isinstance(response, Response):
        return StreamingConnection(request, response, status_code)

    if callable(response):
        if request.scope.get("http_version") == "2":
            return AsgiHttp2Connection(request, response, status_code)
        return AsgiConnection(request, response, status_code)

    raise ConfigurationError(
        f"Cannot pair a starlette Request with {type(response).__name__}. "
        "Provide the ASGI send callable, a Response template, or nothing."
    )
