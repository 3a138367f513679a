"""EventBuffer - accumulate encoded frames for a single write.

A buffer is owned by a Session for batching, but it can also be used on its
own to build event-stream text by hand:

    buffer = EventBuffer()
    buffer.push("Event 1").push({"n": 2}, "update", "evt-2")
    text = buffer.drain()
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from typing import Any

from .encoding import (
    DEFAULT_EVENT,
    Sanitizer,
    Serializer,
    encode_comment,
    encode_event,
    encode_retry,
    generate_event_id,
    sanitize,
    serialize,
)
from .errors import SerializationError, TransportError

Source = Iterable[Any] | AsyncIterable[Any]


async def consume(
    source: Source,
    callback: Callable[[Any, int], Awaitable[None] | None],
) -> int:
    """Feed every value of a sync or async iterable to callback, in order.

    Errors raised by the source itself are wrapped in TransportError;
    errors raised by the callback propagate unchanged. The source is closed
    (aclose/close, when it has one) however the loop ends.

    Returns:
        Number of values consumed
    """
    index = 0

    if isinstance(source, AsyncIterable):
        iterator = aiter(source)
        try:
            while True:
                try:
                    value = await anext(iterator)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise TransportError(f"Source failed after {index} values: {e}") from e
                result = callback(value, index)
                if inspect.isawaitable(result):
                    await result
                index += 1
        finally:
            # Stop an unfinished generator so its own cleanup runs now
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
    elif isinstance(source, Iterable):
        sync_iterator = iter(source)
        try:
            while True:
                try:
                    value = next(sync_iterator)
                except StopIteration:
                    break
                except Exception as e:
                    raise TransportError(f"Source failed after {index} values: {e}") from e
                result = callback(value, index)
                if inspect.isawaitable(result):
                    await result
                index += 1
        finally:
            close = getattr(sync_iterator, "close", None)
            if close is not None:
                close()
    else:
        raise TypeError(f"Expected an iterable or async iterable, got {type(source).__name__}")

    return index


def make_event_id(prefix: str, index: int) -> str:
    """Deterministic `<prefix>-<index>` ids when a prefix is given, else random."""
    return f"{prefix}-{index}" if prefix else generate_event_id()


class EventBuffer:
    """Accumulates event-stream frames in memory.

    Not safe for concurrent writers; the owner must sequence its calls.
    """

    def __init__(
        self,
        serializer: Serializer | None = None,
        sanitizer: Sanitizer | None = None,
    ):
        self._serialize = serializer or serialize
        self._sanitize = sanitizer or sanitize
        self._text = ""
        self._last_event_id: str | None = None

    @property
    def last_event_id(self) -> str | None:
        """Id of the most recent framed event that carried one, since the last clear."""
        return self._last_event_id

    def push(self, data: Any, event: str = DEFAULT_EVENT, event_id: str = "") -> EventBuffer:
        """Append one event frame.

        Args:
            data: Payload; strings pass through, anything else is serialized
            event: Event type name
            event_id: Event identifier, omitted from the frame when empty

        Raises:
            SerializationError: If a hook fails or the frame would be malformed
        """
        try:
            text = self._sanitize(self._serialize(data))
        except Exception as e:
            raise SerializationError(f"Failed to serialize event data: {e}") from e

        if not isinstance(text, str):
            raise SerializationError(
                f"Serializer and sanitizer must produce str, got {type(text).__name__}"
            )

        # Build the whole frame first so a failure never leaves half of one behind
        frame = encode_event(text, event, event_id)
        self._text += frame
        if event_id:
            self._last_event_id = event_id
        return self

    def comment(self, text: str = "") -> EventBuffer:
        self._text += encode_comment(text)
        return self

    def retry(self, milliseconds: int) -> EventBuffer:
        self._text += encode_retry(milliseconds)
        return self

    def dispatch(self) -> EventBuffer:
        """No-op marker for readability in batch code; frames are sent on flush."""
        return self

    def read(self) -> str:
        return self._text

    def clear(self) -> None:
        self._text = ""
        self._last_event_id = None

    def drain(self) -> str:
        """Return the accumulated text and clear the buffer."""
        text = self._text
        self.clear()
        return text

    async def iterate(
        self,
        source: Source,
        event: str = DEFAULT_EVENT,
        event_id_prefix: str = "",
    ) -> None:
        """Push every value of a sync or async iterable, preserving order."""

        def add(value: Any, index: int) -> None:
            self.push(value, event, make_event_id(event_id_prefix, index))

        await consume(source, add)
