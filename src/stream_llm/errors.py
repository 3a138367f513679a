"""Error types raised by stream-llm.

All errors derive from SseError so callers can catch the library's
failures in one place.
"""


class SseError(Exception):
    """Base class for all stream-llm errors."""


class ConfigurationError(SseError):
    """Invalid construction: mismatched transport pairing, missing callback."""


class StateError(SseError):
    """Operation attempted on a session that is not connected."""


class SerializationError(SseError):
    """A serializer or sanitizer hook failed, or a frame field is malformed."""


class TransportError(SseError):
    """A source consumed by stream/iterate raised while producing values."""
