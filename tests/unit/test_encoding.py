"""Unit tests for wire encoding, serialization and sanitization."""

import pytest
from pydantic import BaseModel

from stream_llm.encoding import (
    encode_comment,
    encode_event,
    encode_retry,
    generate_event_id,
    sanitize,
    serialize,
)
from stream_llm.errors import SerializationError

# =============================================================================
# Frame encoding
# =============================================================================


class TestEncodeEvent:
    """Tests for event frames."""

    def test_minimal_frame(self) -> None:
        """Default type and no id produce a bare data frame."""
        assert encode_event("hello") == "data: hello\n\n"

    def test_full_frame(self) -> None:
        """Id and type lines precede the data line."""
        assert encode_event('{"x":1}', "update", "e1") == 'id: e1\nevent: update\ndata: {"x":1}\n\n'

    def test_message_type_is_omitted(self) -> None:
        """The default "message" type is implied, never written."""
        assert "event:" not in encode_event("x", "message", "1")

    def test_empty_type_is_omitted(self) -> None:
        """An empty type omits the event line."""
        assert encode_event("x", "") == "data: x\n\n"

    def test_multiline_data_splits_into_data_lines(self) -> None:
        """Each line of the payload gets its own data line in one frame."""
        frame = encode_event("line1\nline2\nline3", "multi")
        assert frame == "event: multi\ndata: line1\ndata: line2\ndata: line3\n\n"

    def test_empty_data(self) -> None:
        """Empty data still frames a data line."""
        assert encode_event("") == "data: \n\n"

    def test_line_break_in_type_rejected(self) -> None:
        """Event types cannot contain line breaks."""
        with pytest.raises(SerializationError):
            encode_event("x", "bad\ntype")

    def test_line_break_in_id_rejected(self) -> None:
        """Event ids cannot contain line breaks."""
        with pytest.raises(SerializationError):
            encode_event("x", "message", "bad\rid")


class TestControlFrames:
    """Tests for comment and retry frames."""

    def test_empty_comment(self) -> None:
        """An empty comment is a bare heartbeat."""
        assert encode_comment() == ": \n\n"

    def test_comment_text(self) -> None:
        """Comment text follows the colon."""
        assert encode_comment("ping") == ": ping\n\n"

    def test_retry(self) -> None:
        """Retry frames carry milliseconds."""
        assert encode_retry(2000) == "retry: 2000\n\n"

    def test_retry_truncates_float(self) -> None:
        """Fractional retry values are truncated."""
        assert encode_retry(1500.7) == "retry: 1500\n\n"


# =============================================================================
# Serialization hooks
# =============================================================================


class Point(BaseModel):
    x: int
    y: int


class TestSerialize:
    """Tests for the default serializer."""

    def test_string_passes_through(self) -> None:
        """Strings are not JSON encoded."""
        assert serialize("already text") == "already text"

    def test_dict_is_compact_json(self) -> None:
        """Dicts become compact JSON."""
        assert serialize({"x": 1, "y": [1, 2]}) == '{"x":1,"y":[1,2]}'

    def test_numbers_and_none(self) -> None:
        """Numbers and None serialize as JSON."""
        assert serialize(1) == "1"
        assert serialize(None) == "null"
        assert serialize(True) == "true"

    def test_unicode_is_not_escaped(self) -> None:
        """Non-ASCII text stays readable."""
        assert serialize({"text": "日本語 🎌"}) == '{"text":"日本語 🎌"}'

    def test_bytes_decode_as_utf8(self) -> None:
        """Bytes decode as UTF-8."""
        assert serialize("héllo".encode()) == "héllo"

    def test_pydantic_model(self) -> None:
        """Pydantic models serialize via their JSON dump."""
        assert serialize(Point(x=1, y=2)) == '{"x":1,"y":2}'

    def test_unserializable_raises_type_error(self) -> None:
        """Unsupported objects raise TypeError."""
        with pytest.raises(TypeError):
            serialize(object())


class TestSanitize:
    """Tests for the default sanitizer."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("a\nb", "a b"),
            ("a\r\nb", "a b"),
            ("a\rb", "a b"),
            ("a\n\nb", "a  b"),
            ("no breaks", "no breaks"),
        ],
    )
    def test_line_breaks_become_spaces(self, raw, expected) -> None:
        """Every kind of line break becomes a space."""
        assert sanitize(raw) == expected

    def test_crlf_collapses_to_one_space(self) -> None:
        """\\r\\n is one line break, not two."""
        assert sanitize("x\r\ny") == "x y"


class TestGenerateEventId:
    def test_ids_are_unique(self) -> None:
        """Generated ids do not repeat."""
        ids = {generate_event_id() for _ in range(100)}
        assert len(ids) == 100

    def test_ids_are_strings(self) -> None:
        """Generated ids are strings."""
        assert isinstance(generate_event_id(), str)
