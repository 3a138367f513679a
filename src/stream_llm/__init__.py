"""stream-llm - Server-Sent Events for ASGI applications.

Optimized for streaming LLM responses, but usable for any server-to-client
push: push events to one session, batch them, stream upstream producers,
and broadcast to many sessions through a Channel.
"""

from .buffer import EventBuffer, consume
from .channel import Channel, create_channel
from .client import (
    ClientConfig,
    EventSourceClient,
    EventStreamParser,
    ServerSentEvent,
    parse_events,
)
from .emitter import EventEmitter
from .encoding import (
    encode_comment,
    encode_event,
    encode_retry,
    generate_event_id,
    sanitize,
    serialize,
)
from .endpoints import SessionEndpoint, create_response
from .errors import (
    ConfigurationError,
    SerializationError,
    SseError,
    StateError,
    TransportError,
)
from .session import Session, SessionOptions, SessionState, create_session
from .transport import (
    DEFAULT_RESPONSE_CODE,
    DEFAULT_RESPONSE_HEADERS,
    AbortSignal,
    AsgiConnection,
    AsgiHttp2Connection,
    Connection,
    StreamingConnection,
    apply_headers,
    create_connection,
)

__version__ = "0.1.0"


def create_event_buffer(serializer=None, sanitizer=None) -> EventBuffer:
    """Create a standalone EventBuffer."""
    return EventBuffer(serializer, sanitizer)


__all__ = [
    # Core
    "Session",
    "SessionOptions",
    "SessionState",
    "Channel",
    "EventBuffer",
    # Factories
    "create_session",
    "create_channel",
    "create_response",
    "create_event_buffer",
    "SessionEndpoint",
    # Errors
    "SseError",
    "ConfigurationError",
    "StateError",
    "SerializationError",
    "TransportError",
    # Wire encoding
    "serialize",
    "sanitize",
    "encode_event",
    "encode_comment",
    "encode_retry",
    "generate_event_id",
    "consume",
    # Observers
    "EventEmitter",
    # Client
    "ClientConfig",
    "EventSourceClient",
    "EventStreamParser",
    "ServerSentEvent",
    "parse_events",
    # Connection adapters (advanced usage)
    "AbortSignal",
    "Connection",
    "AsgiConnection",
    "AsgiHttp2Connection",
    "StreamingConnection",
    "apply_headers",
    "create_connection",
    "DEFAULT_RESPONSE_CODE",
    "DEFAULT_RESPONSE_HEADERS",
]
