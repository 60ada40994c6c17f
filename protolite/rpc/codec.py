"""Tag-length-value serialization of message instances.

Fields are keyed by number on the wire, using the protobuf encoding:
each field starts with a varint tag ``(number << 3) | wire_type``.

Example:
    dog = schema.message("Dog")
    data = encode(dog, {"name": "Spot", "age": 5})
    decode(dog, data)  # {"name": "Spot", "age": 5}
"""

from typing import Any

from ..errors import MalformedWireError, SerializationError
from ..schema.types import ZERO_VALUES, FieldDef, MessageDef

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LEN = 2
WIRE_FIXED32 = 5

VARINT_TYPES = frozenset(["bool", "int32", "int64", "uint32", "uint64"])

# Inclusive bounds accepted on encode
INT_RANGES: dict[str, tuple[int, int]] = {
    "int32": (-(1 << 31), (1 << 31) - 1),
    "int64": (-(1 << 63), (1 << 63) - 1),
    "uint32": (0, (1 << 32) - 1),
    "uint64": (0, (1 << 64) - 1),
}

_MAX_VARINT_BYTES = 10

# Nested messages deeper than this are rejected on both encode and decode
MAX_DEPTH = 100


def _wire_type(f: FieldDef) -> int:
    return WIRE_VARINT if f.type in VARINT_TYPES else WIRE_LEN


def zero_value(f: FieldDef) -> Any:
    """Return the value an absent field decodes to."""
    if f.repeated:
        return []
    if f.is_message:
        return None
    return ZERO_VALUES[f.type]


def normalize(message_def: MessageDef, instance: dict[str, Any]) -> dict[str, Any]:
    """Fill absent fields with zero values, recursing into nested messages."""
    result = {}
    for f in message_def.fields:
        value = instance.get(f.name)
        if value is None:
            result[f.name] = zero_value(f)
        elif f.is_message and f.repeated:
            result[f.name] = [normalize(f.message, v) for v in value]
        elif f.is_message:
            result[f.name] = normalize(f.message, value)
        elif f.repeated:
            result[f.name] = list(value)
        else:
            result[f.name] = value
    return result


# -- Encoding ---------------------------------------------------------------


def _is_zero(f: FieldDef, value: Any) -> bool:
    zero = ZERO_VALUES[f.type]
    return type(value) is type(zero) and value == zero


def _put_varint(buf: bytearray, value: int) -> None:
    value &= (1 << 64) - 1
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            buf.append(byte | 0x80)
        else:
            buf.append(byte)
            return


def _put_tag(buf: bytearray, number: int, wire_type: int) -> None:
    _put_varint(buf, (number << 3) | wire_type)


def _type_error(message_name: str, f: FieldDef, expected: str, value: Any) -> SerializationError:
    return SerializationError(f"{message_name}.{f.name} expects {expected}, got {type(value).__name__}")


def _check_int(message_name: str, f: FieldDef, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _type_error(message_name, f, "an integer", value)
    low, high = INT_RANGES[f.type]
    if not low <= value <= high:
        raise SerializationError(f"{message_name}.{f.name} value {value} out of range for {f.type}")
    return value


def _encode_scalar(buf: bytearray, message_name: str, f: FieldDef, value: Any, depth: int) -> None:
    if f.type == "bool":
        if not isinstance(value, bool):
            raise _type_error(message_name, f, "a bool", value)
        _put_tag(buf, f.number, WIRE_VARINT)
        _put_varint(buf, int(value))
    elif f.type in INT_RANGES:
        _put_tag(buf, f.number, WIRE_VARINT)
        _put_varint(buf, _check_int(message_name, f, value))
    elif f.type == "string":
        if not isinstance(value, str):
            raise _type_error(message_name, f, "a str", value)
        data = value.encode("utf-8")
        _put_tag(buf, f.number, WIRE_LEN)
        _put_varint(buf, len(data))
        buf.extend(data)
    elif f.type == "bytes":
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise _type_error(message_name, f, "bytes", value)
        _put_tag(buf, f.number, WIRE_LEN)
        _put_varint(buf, len(value))
        buf.extend(value)
    else:
        if not isinstance(value, dict):
            raise _type_error(message_name, f, f"a {f.type} mapping", value)
        data = _encode(f.message, value, depth + 1)
        _put_tag(buf, f.number, WIRE_LEN)
        _put_varint(buf, len(data))
        buf.extend(data)


def encode(message_def: MessageDef, instance: dict[str, Any]) -> bytes:
    """Encode a message instance.

    Fields are written in field number order; fields holding their zero
    value are omitted.

    Raises:
        SerializationError: The instance has unknown keys, values of the
            wrong type or range, or messages nested deeper than MAX_DEPTH.
    """
    return _encode(message_def, instance, 0)


def _encode(message_def: MessageDef, instance: dict[str, Any], depth: int) -> bytes:
    if depth > MAX_DEPTH:
        raise SerializationError(f"{message_def.name} nested deeper than {MAX_DEPTH} messages")
    if not isinstance(instance, dict):
        raise SerializationError(f"{message_def.name} instance must be a dict, got {type(instance).__name__}")

    unknown = [key for key in instance if message_def.field_by_name(key) is None]
    if unknown:
        raise SerializationError(f"{message_def.name} has no field(s) {', '.join(map(repr, unknown))}")

    buf = bytearray()
    for f in sorted(message_def.fields, key=lambda f: f.number):
        value = instance.get(f.name)
        if value is None:
            continue
        if f.repeated:
            if not isinstance(value, (list, tuple)):
                raise _type_error(message_def.name, f, "a list", value)
            for item in value:
                _encode_scalar(buf, message_def.name, f, item, depth)
        elif f.is_message or not _is_zero(f, value):
            _encode_scalar(buf, message_def.name, f, value, depth)
    return bytes(buf)


# -- Decoding ---------------------------------------------------------------


class _Reader:
    """Cursor over a byte buffer that reports positions relative to the frame."""

    def __init__(self, data: bytes | memoryview, base: int = 0) -> None:
        self.data = memoryview(data)
        self.pos = 0
        self.base = base

    @property
    def offset(self) -> int:
        return self.base + self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def fail(self, reason: str, offset: int | None = None) -> MalformedWireError:
        return MalformedWireError(self.offset if offset is None else offset, reason)

    def varint(self) -> int:
        start = self.offset
        result = 0
        for shift in range(0, _MAX_VARINT_BYTES * 7, 7):
            if self.pos >= len(self.data):
                raise self.fail("truncated varint", start)
            byte = self.data[self.pos]
            self.pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & ((1 << 64) - 1)
        raise self.fail("varint longer than 10 bytes", start)

    def take(self, length: int) -> memoryview:
        if length > len(self.data) - self.pos:
            raise self.fail(f"length {length} exceeds remaining {len(self.data) - self.pos} bytes")
        chunk = self.data[self.pos : self.pos + length]
        self.pos += length
        return chunk

    def skip(self, wire_type: int, number: int) -> None:
        if wire_type == WIRE_VARINT:
            self.varint()
        elif wire_type == WIRE_FIXED64:
            self.take(8)
        elif wire_type == WIRE_LEN:
            self.take(self.varint())
        elif wire_type == WIRE_FIXED32:
            self.take(4)
        else:
            raise self.fail(f"invalid wire type {wire_type} for field {number}")


def _signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _convert_varint(reader: _Reader, f: FieldDef, raw: int, start: int) -> Any:
    if f.type == "bool":
        return raw != 0
    if f.type in ("int32", "int64"):
        # int32 negatives are sign-extended to 64 bits on the wire
        value = _signed(raw, 64)
    else:
        value = raw
    low, high = INT_RANGES[f.type]
    if not low <= value <= high:
        raise reader.fail(f"value {value} out of range for {f.type} field {f.name}", start)
    return value


def _decode_len(reader: _Reader, f: FieldDef, chunk: memoryview, start: int, depth: int) -> Any:
    if f.type == "string":
        try:
            return bytes(chunk).decode("utf-8")
        except UnicodeDecodeError:
            raise reader.fail(f"invalid UTF-8 in string field {f.name}", start) from None
    if f.type == "bytes":
        return bytes(chunk)
    return _decode(f.message, chunk, start, depth + 1)


def _decode(message_def: MessageDef, data: bytes | memoryview, base: int, depth: int) -> dict[str, Any]:
    reader = _Reader(data, base)
    if depth > MAX_DEPTH:
        raise reader.fail("message nesting too deep")
    result: dict[str, Any] = {f.name: zero_value(f) for f in message_def.fields}

    while not reader.at_end():
        tag_offset = reader.offset
        tag = reader.varint()
        number, wire_type = tag >> 3, tag & 0x07
        if number == 0:
            raise reader.fail("field number 0 is invalid", tag_offset)

        f = message_def.field_by_number(number)
        if f is None:
            reader.skip(wire_type, number)
            continue

        expected = _wire_type(f)
        value_offset = reader.offset
        if wire_type == expected == WIRE_VARINT:
            value = _convert_varint(reader, f, reader.varint(), value_offset)
        elif wire_type == expected == WIRE_LEN:
            chunk = reader.take(reader.varint())
            value = _decode_len(reader, f, chunk, reader.offset - len(chunk), depth)
        elif wire_type == WIRE_LEN and f.repeated and expected == WIRE_VARINT:
            chunk = reader.take(reader.varint())
            packed = _Reader(chunk, reader.offset - len(chunk))
            while not packed.at_end():
                item_offset = packed.offset
                result[f.name].append(_convert_varint(packed, f, packed.varint(), item_offset))
            continue
        else:
            raise reader.fail(f"wire type {wire_type} does not match {f.type} field {f.name}", tag_offset)

        if f.repeated:
            result[f.name].append(value)
        else:
            result[f.name] = value

    return result


def decode(message_def: MessageDef, data: bytes | memoryview) -> dict[str, Any]:
    """Decode bytes into a message instance.

    Unknown field numbers are skipped and absent fields get zero values.

    Raises:
        MalformedWireError: The data is truncated or inconsistent with the
            message definition.
    """
    return _decode(message_def, data, 0, 0)
