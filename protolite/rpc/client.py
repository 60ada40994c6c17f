"""Client stub for calling the methods of a declared service."""

import asyncio
import functools
import logging
import socket
import time
from collections.abc import Coroutine
from typing import Any, Literal, overload

from ..config import ClientConfig
from ..errors import (
    MalformedWireError,
    ProtoliteError,
    RemoteError,
    RpcConnectionError,
    RpcTimeoutError,
    UnknownMethodError,
)
from ..schema.types import MethodDef, SchemaModel, ServiceDef
from . import codec, framing
from .dispatch import Message, method_path
from .framing import StatusCode

logger = logging.getLogger(__name__)

_RECV_SIZE = 65536


class Client:
    """Calls one service of a schema on a remote server.

    Supports both synchronous and asynchronous use. Every declared method
    is also available as an attribute.

    Each call opens its own connection, sends one request and waits for
    the matching response or the timeout.

    Example (sync):
        client = Client(schema, "DogService", config=ClientConfig(port=3500))
        dog = client.GetDog({})

    Example (async):
        dog = await client.call("GetDog", {}, async_=True)
    """

    def __init__(
        self,
        schema: SchemaModel,
        service: str,
        *,
        config: ClientConfig | None = None,
    ) -> None:
        self._schema = schema
        self._service: ServiceDef = schema.service(service)
        self._config = config or ClientConfig()
        self._stubs = {m.name: functools.partial(self.call, m.name) for m in self._service.methods}

    @property
    def service(self) -> ServiceDef:
        return self._service

    @property
    def config(self) -> ClientConfig:
        return self._config

    def methods(self) -> list[str]:
        return [m.name for m in self._service.methods]

    def __getattr__(self, name: str) -> Any:
        stubs = self.__dict__.get("_stubs")
        if stubs is not None and name in stubs:
            return stubs[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    @overload
    def call(
        self,
        method: str,
        request: Message | None = None,
        *,
        timeout: float | None = None,
        async_: Literal[False] = False,
    ) -> Message: ...

    @overload
    def call(
        self,
        method: str,
        request: Message | None = None,
        *,
        timeout: float | None = None,
        async_: Literal[True],
    ) -> Coroutine[Any, Any, Message]: ...

    def call(
        self,
        method: str,
        request: Message | None = None,
        *,
        timeout: float | None = None,
        async_: bool = False,
    ) -> Message | Coroutine[Any, Any, Message]:
        """Call a method and return its decoded response.

        Args:
            method: Name of a method declared by the service.
            request: The request message; None sends an all-zero request.
            timeout: Seconds to wait, overriding the configured timeout.
            async_: If True, returns a coroutine for async calling.

        Raises:
            UnknownMethodError: The method is not declared or not implemented.
            RemoteError: The handler reported an error.
            RpcConnectionError: The connection failed or closed early.
            RpcTimeoutError: No response arrived in time.
            MalformedWireError: The response could not be decoded.
        """
        if timeout is None:
            timeout = self._config.timeout

        if async_:
            return self._call_async(method, request, timeout)

        method_def, frame = self._prepare(method, request)
        body = self._exchange(frame, timeout)
        return self._finish(method_def, body)

    def _prepare(self, method: str, request: Message | None) -> tuple[MethodDef, bytes]:
        method_def = self._service.method(method)
        payload = codec.encode(method_def.request, {} if request is None else request)
        name = method_path(self._service.name, method, self._schema.package)
        return method_def, framing.encode_request(name, payload)

    def _finish(self, method_def: MethodDef, body: bytes) -> Message:
        response = framing.decode_response(body)
        if response.ok:
            return codec.decode(method_def.response, response.payload)

        code, message = framing.decode_error(response.payload)
        logger.debug("%s failed with status %d: %s", method_def.name, code, message)
        if code == StatusCode.UNIMPLEMENTED:
            raise UnknownMethodError(message)
        raise RemoteError(code, message)

    def _address(self) -> str:
        return f"{self._config.host}:{self._config.port}"

    def _exchange(self, frame: bytes, timeout: float | None) -> bytes:
        """Send one frame over a fresh socket and wait for one frame back."""
        deadline = None if timeout is None else time.monotonic() + timeout
        framer = framing.Framer(self._config.max_frame_size)

        try:
            sock = socket.create_connection((self._config.host, self._config.port), timeout=timeout)
        except TimeoutError:
            raise RpcTimeoutError(f"Timed out connecting to {self._address()}") from None
        except OSError as e:
            raise RpcConnectionError(f"Cannot connect to {self._address()}: {e}") from e

        with sock:
            try:
                sock.sendall(frame)
                while True:
                    body = framer.decode_frame()
                    if body is not None:
                        return body
                    if deadline is not None:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            raise RpcTimeoutError(f"No response from {self._address()} within {timeout}s")
                        sock.settimeout(remaining)
                    chunk = sock.recv(_RECV_SIZE)
                    if not chunk:
                        if framer.pending:
                            raise MalformedWireError(framer.pending, "connection closed inside frame")
                        raise RpcConnectionError(f"{self._address()} closed the connection before responding")
                    framer.append_buffer(chunk)
            except ProtoliteError:
                raise
            except TimeoutError:
                raise RpcTimeoutError(f"No response from {self._address()} within {timeout}s") from None
            except OSError as e:
                raise RpcConnectionError(f"Connection to {self._address()} failed: {e}") from e

    async def _call_async(self, method: str, request: Message | None, timeout: float | None) -> Message:
        method_def, frame = self._prepare(method, request)
        try:
            body = await asyncio.wait_for(self._exchange_async(frame), timeout)
        except TimeoutError:
            raise RpcTimeoutError(f"No response from {self._address()} within {timeout}s") from None
        return self._finish(method_def, body)

    async def _exchange_async(self, frame: bytes) -> bytes:
        try:
            reader, writer = await asyncio.open_connection(self._config.host, self._config.port)
        except OSError as e:
            raise RpcConnectionError(f"Cannot connect to {self._address()}: {e}") from e

        # Closed on every exit, cancellation included
        try:
            try:
                writer.write(frame)
                await writer.drain()
                body = await framing.read_frame(reader, self._config.max_frame_size)
            except OSError as e:
                raise RpcConnectionError(f"Connection to {self._address()} failed: {e}") from e
        finally:
            writer.close()

        if body is None:
            raise RpcConnectionError(f"{self._address()} closed the connection before responding")
        return body
