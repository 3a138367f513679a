"""Transport abstraction layer.

Unifies the ways an ASGI application can hold an open event-stream response:
- AsgiConnection - raw ASGI send over HTTP/1.x
- AsgiHttp2Connection - raw ASGI send over HTTP/2
- StreamingConnection - fetch style, feeding a StreamingResponse
"""

from .asgi import AsgiConnection, AsgiHttp2Connection
from .base import (
    DEFAULT_REQUEST_METHOD,
    DEFAULT_RESPONSE_CODE,
    DEFAULT_RESPONSE_HEADERS,
    AbortSignal,
    Connection,
    apply_headers,
)
from .factory import create_connection
from .streaming import EventStreamResponse, StreamingConnection

__all__ = [
    # Base abstractions
    "AbortSignal",
    "Connection",
    "apply_headers",
    "create_connection",
    "DEFAULT_REQUEST_METHOD",
    "DEFAULT_RESPONSE_CODE",
    "DEFAULT_RESPONSE_HEADERS",
    # ASGI implementations
    "AsgiConnection",
    "AsgiHttp2Connection",
    # Fetch-style implementation
    "EventStreamResponse",
    "StreamingConnection",
]
