"""Method name to handler registry used by the server."""

import inspect
import threading
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from ..errors import DispatchFrozenError, DuplicateHandlerError, UnknownMethodError
from ..schema.types import MethodDef

Message = dict[str, Any]
Handler = Callable[[Message], Message | None] | Callable[[Message], Awaitable[Message | None]]


def method_path(service: str, method: str, package: str | None = None) -> str:
    """Build the name a method is called by on the wire."""
    if package:
        return f"{package}.{service}/{method}"
    return f"{service}/{method}"


@dataclass(frozen=True)
class HandlerEntry:
    """A registered handler together with the method shape it serves."""

    name: str
    method: MethodDef
    handler: Handler
    is_async: bool


class DispatchTable:
    """Registry of handlers keyed by method path.

    Handlers are registered during setup. `freeze()` replaces the mutable
    dict with a read-only view; after that `resolve` needs no locking and
    any further `register` fails.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, HandlerEntry] | Mapping[str, HandlerEntry] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, handler: Handler, *, method: MethodDef) -> HandlerEntry:
        """Add a handler for `name`.

        Raises:
            DuplicateHandlerError: `name` already has a handler.
            DispatchFrozenError: The table is already serving.
        """
        if not callable(handler):
            raise TypeError(f"Handler for {name} is not callable")

        with self._lock:
            if self._frozen:
                raise DispatchFrozenError(f"Cannot register {name}: dispatch table is frozen")
            if name in self._entries:
                raise DuplicateHandlerError(f"{name} already has a handler")
            entry = HandlerEntry(
                name=name,
                method=method,
                handler=handler,
                is_async=inspect.iscoroutinefunction(handler),
            )
            self._entries[name] = entry  # type: ignore[index]
            return entry

    def freeze(self) -> None:
        """Make the table immutable."""
        with self._lock:
            if not self._frozen:
                self._entries = MappingProxyType(dict(self._entries))
                self._frozen = True

    def resolve(self, name: str) -> HandlerEntry:
        """Look up the handler for `name`.

        Raises:
            UnknownMethodError: No handler is registered under `name`.
        """
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownMethodError(f"Method {name} is not implemented") from None

    def names(self) -> list[str]:
        return list(self._entries)
