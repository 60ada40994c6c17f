"""Interface definition parser using Lark."""

import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from lark.visitors import Transformer

from ..errors import SchemaSyntaxError, UnknownTypeError
from .types import EMPTY_MESSAGE, FieldDef, MessageDef, MethodDef, SchemaModel, ServiceDef, is_primitive

MAX_FIELD_NUMBER = (1 << 29) - 1
SUPPORTED_SYNTAX = "proto3"

_g_parser: Lark | None = None


@dataclass
class _Ref:
    value: str
    line: int
    column: int


@dataclass
class _Syntax:
    value: Token


@dataclass
class _Package:
    ref: _Ref


@dataclass
class _Field:
    name: Token
    number: Token
    type: _Ref
    repeated: bool


@dataclass
class _Message:
    name: Token
    fields: list[_Field]


@dataclass
class _Rpc:
    name: Token
    request: _Ref
    response: _Ref


@dataclass
class _Service:
    name: Token
    rpcs: list[_Rpc]


TFilter = TypeVar("TFilter", bound=object)


def _find_many(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


class TreeTransformer(Transformer):
    """Transform the parse tree into declaration records."""

    def dotted_name(self, args: list[Token]) -> _Ref:
        return _Ref(value=".".join(str(a) for a in args), line=args[0].line, column=args[0].column)

    def type_ref(self, args: list[Any]) -> _Ref:
        return args[0]

    def syntax(self, args: list[Token]) -> _Syntax:
        return _Syntax(value=args[0])

    def package(self, args: list[Any]) -> _Package:
        return _Package(ref=args[0])

    def field(self, args: list[Any]) -> _Field:
        repeated = isinstance(args[0], Token) and args[0].type == "REPEATED"
        if repeated:
            args = args[1:]
        type_ref, name, number = args
        return _Field(name=name, number=number, type=type_ref, repeated=repeated)

    def message(self, args: list[Any]) -> _Message:
        return _Message(name=args[0], fields=_find_many(args, _Field))

    def rpc(self, args: list[Any]) -> _Rpc:
        return _Rpc(name=args[0], request=args[1], response=args[2])

    def service(self, args: list[Any]) -> _Service:
        return _Service(name=args[0], rpcs=_find_many(args, _Rpc))

    def start(self, args: list[Any]) -> list[Any]:
        return args


def _error_at(token: Token | _Ref, message: str) -> SchemaSyntaxError:
    return SchemaSyntaxError(token.line or 0, token.column or 0, message)


def _describe(exc: UnexpectedInput) -> str:
    if isinstance(exc, UnexpectedCharacters):
        return f"unexpected character {exc.char!r}"
    if isinstance(exc, UnexpectedEOF) or (
        isinstance(exc, UnexpectedToken) and exc.token.type == "$END"
    ):
        return "unexpected end of input"
    if isinstance(exc, UnexpectedToken):
        expected = ", ".join(sorted(exc.expected))
        return f"unexpected {str(exc.token)!r}, expected one of: {expected}"
    return str(exc)


def _position(exc: UnexpectedInput, text: str) -> tuple[int, int]:
    line = getattr(exc, "line", None)
    column = getattr(exc, "column", None)
    if isinstance(line, int) and line > 0 and isinstance(column, int) and column > 0:
        return line, column
    # End of input: point just past the last character
    lines = text.split("\n")
    return len(lines), len(lines[-1]) + 1


def _build_message(decl: _Message) -> MessageDef:
    names: set[str] = set()
    numbers: set[int] = set()
    fields = []

    for f in decl.fields:
        number = int(f.number)
        if number < 1 or number > MAX_FIELD_NUMBER:
            raise _error_at(f.number, f"field number {number} out of range 1..{MAX_FIELD_NUMBER}")
        if str(f.name) in names:
            raise _error_at(f.name, f"duplicate field name {str(f.name)!r} in {decl.name}")
        if number in numbers:
            raise _error_at(f.number, f"duplicate field number {number} in {decl.name}")
        names.add(str(f.name))
        numbers.add(number)
        fields.append(FieldDef(name=str(f.name), number=number, type=f.type.value, repeated=f.repeated))

    return MessageDef(name=str(decl.name), fields=fields)


def _build_service(decl: _Service) -> ServiceDef:
    methods: list[MethodDef] = []

    for rpc in decl.rpcs:
        if any(m.name == str(rpc.name) for m in methods):
            raise _error_at(rpc.name, f"duplicate method {str(rpc.name)!r} in {decl.name}")
        methods.append(
            MethodDef(
                name=str(rpc.name),
                request_type=rpc.request.value,
                response_type=rpc.response.value,
            )
        )

    return ServiceDef(name=str(decl.name), methods=methods)


class _Resolver:
    """Resolve type names once every message has been declared."""

    def __init__(self, package: str | None, messages: dict[str, MessageDef]) -> None:
        self._package = package
        self._messages = messages

    def lookup(self, name: str) -> MessageDef | None:
        if self._package and name.startswith(self._package + "."):
            name = name[len(self._package) + 1 :]
        if name in self._messages:
            return self._messages[name]
        if name in (EMPTY_MESSAGE, "google.protobuf.Empty"):
            # A declared Empty wins over the built-in one
            return self._messages.setdefault(EMPTY_MESSAGE, MessageDef(name=EMPTY_MESSAGE, fields=[]))
        return None

    def resolve(self, services: dict[str, ServiceDef]) -> None:
        for message in list(self._messages.values()):
            for f in message.fields:
                if is_primitive(f.type):
                    continue
                target = self.lookup(f.type)
                if target is None:
                    raise UnknownTypeError(message.name, f.name, f.type)
                f.type = target.name
                f.message = target

        for service in services.values():
            for method in service.methods:
                request = self.lookup(method.request_type)
                if request is None:
                    raise UnknownTypeError(service.name, method.name, method.request_type)
                response = self.lookup(method.response_type)
                if response is None:
                    raise UnknownTypeError(service.name, method.name, method.response_type)
                method.request_type, method.request = request.name, request
                method.response_type, method.response = response.name, response


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/schema.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar, parser="lalr")

    return _g_parser


def parse(text: str) -> SchemaModel:
    """Parse an interface definition into a schema model.

    Raises:
        SchemaSyntaxError: The text does not match the grammar, or declares
            duplicate names or invalid field numbers.
        UnknownTypeError: A field or method refers to an undeclared message.
    """
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as e:
        line, column = _position(e, text)
        raise SchemaSyntaxError(line, column, _describe(e)) from None

    items = TreeTransformer().transform(tree)

    syntaxes = _find_many(items, _Syntax)
    for syntax in syntaxes:
        if syntax.value[1:-1] != SUPPORTED_SYNTAX:
            raise _error_at(syntax.value, f"unsupported syntax {str(syntax.value)}")

    packages = _find_many(items, _Package)
    if len(packages) > 1:
        raise _error_at(packages[1].ref, "package declared more than once")
    package = packages[0].ref.value if packages else None

    messages: dict[str, MessageDef] = {}
    for decl in _find_many(items, _Message):
        if str(decl.name) in messages:
            raise _error_at(decl.name, f"duplicate message {str(decl.name)!r}")
        messages[str(decl.name)] = _build_message(decl)

    services: dict[str, ServiceDef] = {}
    for decl in _find_many(items, _Service):
        if str(decl.name) in services or str(decl.name) in messages:
            raise _error_at(decl.name, f"duplicate declaration {str(decl.name)!r}")
        services[str(decl.name)] = _build_service(decl)

    _Resolver(package, messages).resolve(services)

    return SchemaModel(package=package, messages=messages, services=services)
