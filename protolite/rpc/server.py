"""Asyncio RPC server."""

import asyncio
import contextlib
import inspect
import logging
from asyncio import StreamReader, StreamWriter
from collections.abc import Mapping
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any

from ..config import ServerConfig
from ..errors import (
    MalformedWireError,
    ProtoliteError,
    RemoteError,
    SerializationError,
    UnknownMethodError,
)
from ..schema.types import SchemaModel
from . import codec, framing
from .dispatch import DispatchTable, Handler, HandlerEntry, Message, method_path
from .framing import StatusCode

logger = logging.getLogger(__name__)


class Server:
    """Serves the methods of a schema over TCP.

    Handlers are registered first, then `start()` freezes the dispatch
    table and begins accepting connections. Each connection runs in its own
    task and handles its requests one at a time, in the order received.

    Handlers take the decoded request dict and return the response dict
    (or None for an all-zero response). Coroutine functions are awaited;
    plain functions run on a worker thread owned by their connection, so a
    blocking handler only holds up its own connection.

    Example:
        server = Server(schema, config=ServerConfig(port=3500))
        server.add_service("DogService", {"GetDog": lambda _: {"name": "Spot", "age": 5}})
        server.serve()
    """

    def __init__(
        self,
        schema: SchemaModel,
        *,
        config: ServerConfig | None = None,
        dispatch: DispatchTable | None = None,
    ) -> None:
        self._schema = schema
        self._config = config or ServerConfig()
        self._dispatch = dispatch if dispatch is not None else DispatchTable()
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task[Any]] = set()

    @property
    def schema(self) -> SchemaModel:
        return self._schema

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def dispatch(self) -> DispatchTable:
        return self._dispatch

    @property
    def port(self) -> int:
        """The port actually bound, useful when configured with port 0."""
        if self._server is None or not self._server.sockets:
            raise ProtoliteError("Server is not listening")
        return self._server.sockets[0].getsockname()[1]

    def add_method(self, service: str, method: str, handler: Handler) -> HandlerEntry:
        """Register a handler for one method of a declared service.

        Raises:
            SchemaLookupError: The service is not declared.
            UnknownMethodError: The service has no such method.
            DuplicateHandlerError: The method already has a handler.
        """
        method_def = self._schema.service(service).method(method)
        name = method_path(service, method, self._schema.package)
        entry = self._dispatch.register(name, handler, method=method_def)
        logger.debug("Registered handler for %s", name)
        return entry

    def add_service(self, service: str, implementation: Mapping[str, Handler] | object) -> None:
        """Register handlers for a service from a mapping or an object.

        With an object, attributes named after the service's methods are
        used. Methods left without a handler answer UNIMPLEMENTED.
        """
        service_def = self._schema.service(service)
        declared = [m.name for m in service_def.methods]

        if isinstance(implementation, Mapping):
            extra = sorted(set(implementation) - set(declared))
            if extra:
                raise UnknownMethodError(f"{service} has no method(s) {', '.join(extra)}")
            handlers = dict(implementation)
        else:
            handlers = {
                name: getattr(implementation, name)
                for name in declared
                if callable(getattr(implementation, name, None))
            }

        for name in declared:
            if name in handlers:
                self.add_method(service, name, handlers[name])
            else:
                logger.warning("%s.%s has no handler", service, name)

    async def start(self) -> None:
        """Freeze the dispatch table and start listening."""
        if self._server is not None:
            raise ProtoliteError("Server already started")

        self._dispatch.freeze()
        self._server = await asyncio.start_server(
            self._handle_connection, self._config.host, self._config.port
        )
        logger.info("Listening on %s:%d", self._config.host, self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting connections and close the open ones."""
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()
        for task in list(self._connections):
            task.cancel()
        await asyncio.gather(*self._connections, return_exceptions=True)
        await server.wait_closed()
        logger.info("Server stopped")

    async def __aenter__(self) -> "Server":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def serve(self) -> None:
        """Blocking entry point: serve until interrupted."""
        try:
            asyncio.run(self.serve_forever())
        except KeyboardInterrupt:
            logger.info("Interrupted")

    async def _handle_connection(self, reader: StreamReader, writer: StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        peer = writer.get_extra_info("peername")
        logger.debug("Connection from %s", peer)
        # Requests on a connection run one at a time, so one thread is enough
        workers = ThreadPoolExecutor(max_workers=1, thread_name_prefix="protolite-handler")

        try:
            while True:
                body = await framing.read_frame(reader, self._config.max_frame_size)
                if body is None:
                    break
                response = await self._handle_request(body, workers)
                writer.write(response)
                await writer.drain()
        except MalformedWireError as e:
            # The stream can't be resynchronized after a bad frame header
            logger.warning("Dropping connection from %s: %s", peer, e)
        except OSError as e:
            logger.debug("Connection from %s failed: %s", peer, e)
        finally:
            if task is not None:
                self._connections.discard(task)
            workers.shutdown(wait=False, cancel_futures=True)
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
            logger.debug("Connection from %s closed", peer)

    async def _handle_request(self, body: bytes, workers: Executor) -> bytes:
        try:
            request = framing.decode_request(body)
        except MalformedWireError as e:
            logger.warning("Malformed request frame: %s", e)
            return framing.encode_error(StatusCode.INVALID_ARGUMENT, str(e))

        try:
            entry = self._dispatch.resolve(request.method)
        except UnknownMethodError as e:
            logger.warning("Call to unknown method %s", request.method)
            return framing.encode_error(StatusCode.UNIMPLEMENTED, str(e))

        method = entry.method
        try:
            message = codec.decode(method.request, request.payload)
        except MalformedWireError as e:
            logger.warning("Malformed %s request for %s: %s", method.request_type, entry.name, e)
            return framing.encode_error(
                StatusCode.INVALID_ARGUMENT, f"Invalid {method.request_type}: {e}"
            )

        try:
            result = await self._invoke(entry, message, workers)
        except RemoteError as e:
            logger.debug("%s returned error %d: %s", entry.name, e.code, e.message)
            return framing.encode_error(e.code, e.message)
        except Exception as e:
            logger.exception("Handler for %s failed", entry.name)
            detail = f"{type(e).__name__}: {e}" if self._config.include_error_details else ""
            return framing.encode_error(StatusCode.INTERNAL, detail or "Internal error")

        try:
            payload = codec.encode(method.response, {} if result is None else result)
        except SerializationError as e:
            logger.error("Handler for %s returned an invalid %s: %s", entry.name, method.response_type, e)
            return framing.encode_error(
                StatusCode.INTERNAL, f"Handler returned an invalid {method.response_type}"
            )

        return framing.encode_response(payload)

    async def _invoke(self, entry: HandlerEntry, message: Message, workers: Executor) -> Any:
        if entry.is_async:
            return await entry.handler(message)  # type: ignore[misc]

        result = await asyncio.get_running_loop().run_in_executor(workers, entry.handler, message)
        if inspect.isawaitable(result):
            result = await result
        return result
