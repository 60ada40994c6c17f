"""RPC runtime: wire codec, framing, dispatch, server and client."""

from .client import Client as Client
from .codec import decode as decode
from .codec import encode as encode
from .codec import normalize as normalize
from .dispatch import DispatchTable as DispatchTable
from .dispatch import HandlerEntry as HandlerEntry
from .dispatch import method_path as method_path
from .framing import StatusCode as StatusCode
from .server import Server as Server
