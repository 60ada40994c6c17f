"""Connection settings for servers and clients."""

from dataclasses import dataclass

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3500
DEFAULT_MAX_FRAME_SIZE = 4 * 1024 * 1024


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for the RPC server."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT  # 0 picks a free port
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    include_error_details: bool = True  # send handler exception text to callers


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for an RPC client."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float | None = 10.0  # seconds per call, None waits forever
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
