"""Length-prefixed framing for requests and responses.

Request frame::

    [u32 length][u16 method length][method name][payload]

Response frame::

    [u32 length][u8 status][payload]

``length`` is big-endian and counts the bytes that follow it. An error
response carries an encoded ``Status`` message as its payload.
"""

import struct
from asyncio import IncompleteReadError, StreamReader
from dataclasses import dataclass
from enum import IntEnum

from ..config import DEFAULT_MAX_FRAME_SIZE
from ..errors import FrameTooLargeError, MalformedWireError
from ..schema.types import FieldDef, MessageDef
from . import codec

LENGTH_PREFIX = struct.Struct(">I")
METHOD_PREFIX = struct.Struct(">H")

STATUS_OK = 0
STATUS_ERROR = 1


class StatusCode(IntEnum):
    """Error codes carried in error responses (gRPC numbering)."""

    OK = 0
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    NOT_FOUND = 5
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14


STATUS_MESSAGE = MessageDef(
    name="Status",
    fields=[
        FieldDef(name="code", number=1, type="int32"),
        FieldDef(name="message", number=2, type="string"),
    ],
)


@dataclass(frozen=True)
class Request:
    method: str
    payload: bytes


@dataclass(frozen=True)
class Response:
    status: int
    payload: bytes

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def _frame(body: bytes) -> bytes:
    return LENGTH_PREFIX.pack(len(body)) + body


def encode_request(method: str, payload: bytes) -> bytes:
    """Build a complete request frame."""
    name = method.encode("utf-8")
    if len(name) > 0xFFFF:
        raise ValueError("method name too long")
    return _frame(METHOD_PREFIX.pack(len(name)) + name + payload)


def decode_request(body: bytes) -> Request:
    """Split a request frame body (without length prefix) into method and payload."""
    if len(body) < METHOD_PREFIX.size:
        raise MalformedWireError(LENGTH_PREFIX.size, "request frame too short for method length")
    (name_len,) = METHOD_PREFIX.unpack_from(body)
    start = METHOD_PREFIX.size
    if name_len > len(body) - start:
        raise MalformedWireError(
            LENGTH_PREFIX.size, f"method name length {name_len} exceeds frame of {len(body)} bytes"
        )
    try:
        method = body[start : start + name_len].decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedWireError(LENGTH_PREFIX.size + start, "method name is not valid UTF-8") from None
    return Request(method=method, payload=bytes(body[start + name_len :]))


def encode_response(payload: bytes) -> bytes:
    """Build a success response frame."""
    return _frame(bytes([STATUS_OK]) + payload)


def encode_error(code: int, message: str) -> bytes:
    """Build an error response frame."""
    payload = codec.encode(STATUS_MESSAGE, {"code": int(code), "message": message})
    return _frame(bytes([STATUS_ERROR]) + payload)


def decode_response(body: bytes) -> Response:
    """Split a response frame body (without length prefix) into status and payload."""
    if not body:
        raise MalformedWireError(LENGTH_PREFIX.size, "response frame has no status byte")
    status = body[0]
    if status not in (STATUS_OK, STATUS_ERROR):
        raise MalformedWireError(LENGTH_PREFIX.size, f"unknown response status {status}")
    return Response(status=status, payload=bytes(body[1:]))


def decode_error(payload: bytes) -> tuple[int, str]:
    """Decode the code and message of an error response."""
    status = codec.decode(STATUS_MESSAGE, payload)
    return status["code"], status["message"]


def check_length(length: int, max_frame_size: int) -> None:
    if length > max_frame_size:
        raise FrameTooLargeError(0, f"frame of {length} bytes exceeds limit of {max_frame_size}")


def split_frame(data: bytes, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> bytes:
    """Strip the length prefix from exactly one complete frame."""
    if len(data) < LENGTH_PREFIX.size:
        raise MalformedWireError(0, "truncated length prefix")
    (length,) = LENGTH_PREFIX.unpack_from(data)
    check_length(length, max_frame_size)
    actual = len(data) - LENGTH_PREFIX.size
    if actual < length:
        raise MalformedWireError(len(data), f"frame truncated: expected {length} bytes, got {actual}")
    if actual > length:
        raise MalformedWireError(LENGTH_PREFIX.size + length, f"{actual - length} trailing bytes after frame")
    return bytes(data[LENGTH_PREFIX.size :])


class Framer:
    """Reassembles frames from a stream of received chunks."""

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._buffer = bytearray()

    def append_buffer(self, data: bytes) -> None:
        """Append data to the receive buffer."""
        self._buffer.extend(data)

    def clear_buffer(self) -> None:
        """Clear the receive buffer."""
        self._buffer.clear()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a frame."""
        return len(self._buffer)

    def decode_frame(self) -> bytes | None:
        """Return the body of the next complete frame, or None if more data is needed."""
        if len(self._buffer) < LENGTH_PREFIX.size:
            return None
        (length,) = LENGTH_PREFIX.unpack_from(self._buffer)
        check_length(length, self._max_frame_size)
        end = LENGTH_PREFIX.size + length
        if len(self._buffer) < end:
            return None
        body = bytes(self._buffer[LENGTH_PREFIX.size : end])
        del self._buffer[:end]
        return body


async def read_frame(reader: StreamReader, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> bytes | None:
    """Read one frame body from an asyncio stream.

    Returns None on a clean end of stream before a new frame starts.

    Raises:
        MalformedWireError: The stream ended in the middle of a frame.
        FrameTooLargeError: The announced length is above the limit.
    """
    try:
        prefix = await reader.readexactly(LENGTH_PREFIX.size)
    except IncompleteReadError as e:
        if not e.partial:
            return None
        raise MalformedWireError(len(e.partial), "stream ended inside length prefix") from None

    (length,) = LENGTH_PREFIX.unpack(prefix)
    check_length(length, max_frame_size)

    try:
        return await reader.readexactly(length)
    except IncompleteReadError as e:
        raise MalformedWireError(
            LENGTH_PREFIX.size + len(e.partial), f"stream ended after {len(e.partial)} of {length} bytes"
        ) from None
