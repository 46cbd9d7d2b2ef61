"""Content-Length framing for JSON-RPC messages over a byte stream."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterator, Optional

from .errors import MalformedFrame

HEADER_SEPARATOR = b"\r\n\r\n"
CONTENT_LENGTH = "content-length"
# A header block this large without a separator means we are not reading LSP.
MAX_HEADER_SIZE = 64 * 1024


def encode(envelope: dict[str, Any]) -> bytes:
    """Serialize an envelope into a framed message.

    The declared length is the byte length of the UTF-8 body, which differs
    from its character count as soon as the payload contains non-ASCII text.
    """
    body = json.dumps(envelope, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def parse_content_length(header: bytes) -> int:
    """Return the declared body length from a raw header block."""
    try:
        text = header.decode("ascii")
    except UnicodeDecodeError as e:
        raise MalformedFrame(f"Header is not ASCII: {header[:80]!r}") from e

    for line in text.split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep or name.strip().lower() != CONTENT_LENGTH:
            continue
        value = value.strip()
        if not value.isdigit():
            raise MalformedFrame(f"Invalid Content-Length value: {value!r}")
        try:
            return int(value)
        except ValueError:
            # More digits than int() accepts.
            raise MalformedFrame(f"Invalid Content-Length value: {value[:20]!r}...") from None

    raise MalformedFrame(f"Missing Content-Length header in message: {text[:80]!r}")


def parse_body(body: bytes) -> Any:
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedFrame(f"Message body is not valid JSON: {e}") from e


def read_message_body(buffer: bytes) -> bytes:
    """Return exactly the declared number of body bytes following the header.

    Bytes past the declared length are ignored; they belong to the next frame.
    """
    end = buffer.find(HEADER_SEPARATOR)
    if end < 0:
        raise MalformedFrame(f"Missing header field in message: {buffer[:80]!r}")

    length = parse_content_length(buffer[:end])
    start = end + len(HEADER_SEPARATOR)
    body = buffer[start:start + length]
    if len(body) != length:
        raise MalformedFrame(
            f"Declared Content-Length {length} but only {len(body)} bytes follow the header"
        )
    return body


def decode(buffer: bytes) -> Any:
    """Parse a single framed message held entirely in ``buffer``."""
    return parse_body(read_message_body(buffer))


class FrameState(Enum):
    AWAITING_HEADER = "awaiting_header"
    AWAITING_BODY = "awaiting_body"


class FrameDecoder:
    """Incremental decoder for a stream of framed messages.

    Bytes are accumulated across reads, so one message may span several
    chunks and one chunk may carry several messages.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._state = FrameState.AWAITING_HEADER
        self._remaining = 0
        self._error: Optional[MalformedFrame] = None

    @property
    def state(self) -> FrameState:
        return self._state

    @property
    def remaining(self) -> int:
        """Body bytes still expected for the current frame."""
        if self._state is FrameState.AWAITING_BODY:
            return max(self._remaining - len(self._buffer), 0)
        return 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def push(self, data: bytes) -> None:
        self._buffer.extend(data)

    def messages(self) -> Iterator[Any]:
        """Yield buffered messages one at a time, in stream order.

        A malformed frame raises ``MalformedFrame`` only after every message
        before it has been yielded. The error sticks: the stream cannot be
        resynchronised, so later calls raise it again.
        """
        if self._error is not None:
            raise self._error
        try:
            yield from self._drain()
        except MalformedFrame as e:
            self._error = e
            raise

    def feed(self, data: bytes) -> list[Any]:
        """Append ``data`` and return every message that is now complete.

        Messages that precede a malformed frame are still returned; the error
        is raised by the next call.
        """
        if self._error is not None:
            raise self._error
        self.push(data)
        messages: list[Any] = []
        try:
            for message in self.messages():
                messages.append(message)
        except MalformedFrame:
            if not messages:
                raise
        return messages

    def _drain(self) -> Iterator[Any]:
        while True:
            if self._state is FrameState.AWAITING_HEADER:
                end = self._buffer.find(HEADER_SEPARATOR)
                if end < 0:
                    if len(self._buffer) > MAX_HEADER_SIZE:
                        raise MalformedFrame(
                            f"No header separator within {MAX_HEADER_SIZE} bytes"
                        )
                    break
                self._remaining = parse_content_length(bytes(self._buffer[:end]))
                del self._buffer[:end + len(HEADER_SEPARATOR)]
                self._state = FrameState.AWAITING_BODY

            if len(self._buffer) < self._remaining:
                break

            body = bytes(self._buffer[:self._remaining])
            del self._buffer[:self._remaining]
            self._remaining = 0
            self._state = FrameState.AWAITING_HEADER
            yield parse_body(body)
