"""Schema model: message and service definitions produced by the parser."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin, config

from ..errors import SchemaLookupError, UnknownMethodError


def _ref_name(ref: Any) -> str | None:
    return ref.name if ref is not None else None


def _resolved_ref() -> Any:
    """Declare a back-reference filled in by the parser after all types are known.

    References are left out of comparisons, repr and JSON output so recursive
    messages don't recurse.
    """
    return field(
        default=None,
        compare=False,
        repr=False,
        metadata=config(encoder=_ref_name, exclude=lambda _: True),
    )


@dataclass
class FieldDef(DataClassJsonMixin):
    """A numbered field of a message.

    `type` is either a primitive name or the name of another message. For
    message-typed fields `message` points at the resolved definition.
    """

    name: str
    number: int
    type: str
    repeated: bool = False
    message: "MessageDef | None" = _resolved_ref()

    @property
    def is_message(self) -> bool:
        return self.type not in PRIMITIVE_TYPES


@dataclass
class MessageDef(DataClassJsonMixin):
    """A message type with ordered, uniquely numbered fields."""

    name: str
    fields: list[FieldDef]

    def field_by_number(self, number: int) -> FieldDef | None:
        for f in self.fields:
            if f.number == number:
                return f
        return None

    def field_by_name(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass
class MethodDef(DataClassJsonMixin):
    """A unary method: one request message in, one response message out."""

    name: str
    request_type: str
    response_type: str
    request: MessageDef | None = _resolved_ref()
    response: MessageDef | None = _resolved_ref()


@dataclass
class ServiceDef(DataClassJsonMixin):
    """A named group of methods."""

    name: str
    methods: list[MethodDef]

    def method(self, name: str) -> MethodDef:
        for m in self.methods:
            if m.name == name:
                return m
        raise UnknownMethodError(f"{self.name} has no method {name!r}")


@dataclass
class SchemaModel(DataClassJsonMixin):
    """A complete parsed schema."""

    package: str | None
    messages: dict[str, MessageDef]
    services: dict[str, ServiceDef]

    def message(self, name: str) -> MessageDef:
        try:
            return self.messages[name]
        except KeyError:
            raise SchemaLookupError(f"Message {name!r} is not declared") from None

    def service(self, name: str) -> ServiceDef:
        try:
            return self.services[name]
        except KeyError:
            raise SchemaLookupError(f"Service {name!r} is not declared") from None


PRIMITIVE_TYPES = frozenset(
    [
        "bool",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "bytes",
        "string",
    ]
)

ZERO_VALUES: dict[str, Any] = {
    "bool": False,
    "int32": 0,
    "int64": 0,
    "uint32": 0,
    "uint64": 0,
    "bytes": b"",
    "string": "",
}

EMPTY_MESSAGE = "Empty"


def is_primitive(type_name: str) -> bool:
    """Check if a type name is a primitive type."""
    return type_name in PRIMITIVE_TYPES
