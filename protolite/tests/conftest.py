"""Unit tests configuration file."""

import asyncio
import os
import threading

import pytest

from protolite.config import ClientConfig, ServerConfig
from protolite.rpc import Client, Server
from protolite.schema import parse

FIXTURE_DIR = os.path.join(os.path.dirname(os.path.realpath(__file__)), "fixtures")


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


def load_fixture(name):
    with open(os.path.join(FIXTURE_DIR, name), encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def dog_schema():
    return parse(load_fixture("dog.proto"))


class ServerThread(threading.Thread):
    """Runs a server on its own event loop so blocking clients can call it."""

    def __init__(self, server):
        super().__init__(daemon=True)
        self.server = server
        self.loop = asyncio.new_event_loop()
        self.ready = threading.Event()
        self.error = None

    def run(self):
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self.server.start())
        except Exception as e:  # surfaced to the test through self.error
            self.error = e
            self.ready.set()
            return
        self.ready.set()
        self.loop.run_forever()
        self.loop.run_until_complete(self.server.stop())
        self.loop.close()

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.join(timeout=5)


@pytest.fixture
def serve():
    """Start a server in a background thread and return a client config for it."""
    threads = []

    def _serve(server):
        thread = ServerThread(server)
        thread.start()
        thread.ready.wait(timeout=5)
        if thread.error:
            raise thread.error
        threads.append(thread)
        return ClientConfig(host="127.0.0.1", port=server.port, timeout=5.0)

    yield _serve

    for thread in threads:
        thread.stop()


@pytest.fixture
def make_server(dog_schema):
    """Build an unstarted DogService server on a free port."""

    def _make(**handlers):
        server = Server(dog_schema, config=ServerConfig(host="127.0.0.1", port=0))
        server.add_service("DogService", handlers)
        return server

    return _make


@pytest.fixture
def make_client(dog_schema):
    def _make(config):
        return Client(dog_schema, "DogService", config=config)

    return _make
