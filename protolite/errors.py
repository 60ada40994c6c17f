"""Exception hierarchy shared by the schema, wire and RPC layers."""


class ProtoliteError(RuntimeError):
    """Base class for all protolite errors."""


class SchemaError(ProtoliteError):
    """Raised when a schema cannot be loaded."""


class SchemaSyntaxError(SchemaError):
    """Raised when schema text does not match the grammar."""

    def __init__(self, line: int, column: int, message: str) -> None:
        self.line = line
        self.column = column
        self.message = message
        super().__init__(f"line {line}, column {column}: {message}")


class UnknownTypeError(SchemaError):
    """Raised when a field or method refers to a type that is never declared."""

    def __init__(self, message_name: str, field_name: str, type_name: str) -> None:
        self.message_name = message_name
        self.field_name = field_name
        self.type_name = type_name
        super().__init__(f"{message_name}.{field_name} refers to unknown type {type_name!r}")


class SchemaLookupError(SchemaError, LookupError):
    """Raised when a message or service is not part of a schema."""


class SerializationError(ProtoliteError):
    """Raised when a message instance cannot be encoded."""


class MalformedWireError(SerializationError):
    """Raised when bytes on the wire cannot be decoded."""

    def __init__(self, offset: int, reason: str) -> None:
        self.offset = offset
        self.reason = reason
        super().__init__(f"malformed wire data at offset {offset}: {reason}")


class FrameTooLargeError(MalformedWireError):
    """Raised when a frame announces a length above the configured limit."""


class DispatchError(ProtoliteError):
    """Base class for handler registration and lookup errors."""


class DuplicateHandlerError(DispatchError):
    """Raised when a method already has a handler."""


class UnknownMethodError(DispatchError):
    """Raised when a method has no handler or is not declared."""


class DispatchFrozenError(DispatchError):
    """Raised when registering on a table that is already serving."""


class RemoteError(ProtoliteError):
    """Application error reported by a handler, carried back to the caller."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class RpcConnectionError(ProtoliteError, ConnectionError):
    """Raised when the transport fails before a response arrives."""


class RpcTimeoutError(ProtoliteError, TimeoutError):
    """Raised when a call does not complete within its deadline."""
