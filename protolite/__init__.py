"""protolite - a minimal schema-driven RPC stack."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("protolite")
except PackageNotFoundError:
    __version__ = "(local)"
