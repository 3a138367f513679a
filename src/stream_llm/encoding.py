"""Wire encoding for the text/event-stream format.

Frame grammar:

    id: <event id>        (omitted when empty)
    event: <event type>   (omitted for "message")
    data: <line>          (one per line of the sanitized payload)
    <blank line>

Comments (": text") keep intermediaries from timing the connection out and
"retry: <ms>" tells the client how long to wait before reconnecting.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from .errors import SerializationError

DEFAULT_EVENT = "message"

# Hook types
Serializer = Callable[[Any], str]
Sanitizer = Callable[[str], str]


def serialize(data: Any) -> str:
    """Default serializer.

    Strings pass through, bytes are decoded as UTF-8, pydantic models use
    their own JSON dump and everything else becomes compact JSON.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8")
    if isinstance(data, BaseModel):
        return data.model_dump_json()
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def sanitize(text: str) -> str:
    """Default sanitizer: collapse every line break variant into a space."""
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", " ")


def generate_event_id() -> str:
    """Generate a fresh event identifier."""
    return str(uuid.uuid4())


def _check_field(name: str, value: str) -> None:
    if "\n" in value or "\r" in value:
        raise SerializationError(f"Event {name} must not contain line breaks: {value!r}")


def encode_event(text: str, event: str = DEFAULT_EVENT, event_id: str = "") -> str:
    """Frame already-sanitized text as one event."""
    _check_field("type", event)
    _check_field("id", event_id)

    lines: list[str] = []
    if event_id:
        lines.append(f"id: {event_id}\n")
    if event and event != DEFAULT_EVENT:
        lines.append(f"event: {event}\n")
    for line in text.split("\n"):
        lines.append(f"data: {line}\n")
    lines.append("\n")
    return "".join(lines)


def encode_comment(text: str = "") -> str:
    """Frame a comment (heartbeat)."""
    return f": {text}\n\n"


def encode_retry(milliseconds: int) -> str:
    """Frame a reconnection-time directive."""
    return f"retry: {int(milliseconds)}\n\n"
