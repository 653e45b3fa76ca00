"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import socket
import threading
import pytest
import pytest_asyncio
from contextlib import closing
from typing import Any, AsyncGenerator, Generator

from kv_remote.cache.store import MemoryStore
from kv_remote.network.channel import Channel, connect
from kv_remote.network.tcp_server import KVServer
from kv_remote.protocol.codec import HEADER_SIZE, Codec


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Engine and Codec Fixtures
# ============================================================================

@pytest.fixture
def store() -> MemoryStore:
    """Create a fresh MemoryStore instance (100 keys)."""
    return MemoryStore(max_size=100)


@pytest.fixture
def small_store() -> MemoryStore:
    """Create a MemoryStore with small capacity for eviction testing (5 keys)."""
    return MemoryStore(max_size=5)


@pytest.fixture
def codec() -> Codec:
    """Create a Codec instance."""
    return Codec()


# ============================================================================
# Async Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest_asyncio.fixture
async def server(server_port: int) -> AsyncGenerator[KVServer, None]:
    """
    Create and start a server instance in the test's event loop.

    This fixture:
    1. Creates a KVServer on a random free port
    2. Binds it and serves in a background task
    3. Yields the server for testing
    4. Cleans up after the test
    """
    srv = KVServer(host='127.0.0.1', port=server_port, store=MemoryStore(max_size=100))
    await srv.listen()
    server_task = asyncio.create_task(srv.serve_forever())

    yield srv

    await srv.stop()
    server_task.cancel()
    try:
        await server_task
    except asyncio.CancelledError:
        pass


class AsyncFrameClient:
    """
    Helper class for raw protocol testing against the async server.

    Usage:
        async with AsyncFrameClient('127.0.0.1', port) as client:
            reply = await client.request(["key?", "a", {}])
    """

    def __init__(self, host: str, port: int, codec: Codec = None):
        self.host = host
        self.port = port
        self.codec = codec or Codec()
        self.reader = None
        self.writer = None

    async def connect(self) -> None:
        """Establish connection to server."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port
        )

    async def disconnect(self) -> None:
        """Close connection to server."""
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def send(self, message: Any) -> None:
        """Write one encoded frame without reading a reply."""
        self.writer.write(self.codec.encode(message))
        await self.writer.drain()

    async def read_reply(self) -> Any:
        """Read and decode exactly one reply frame."""
        header = await self.reader.readexactly(HEADER_SIZE)
        payload = await self.reader.readexactly(self.codec.payload_length(header))
        return self.codec.decode_payload(payload)

    async def request(self, message: Any) -> Any:
        """Send a command and receive its reply."""
        await self.send(message)
        return await asyncio.wait_for(self.read_reply(), timeout=2)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


@pytest.fixture
def client_factory(server_port: int):
    """
    Factory fixture to create raw frame clients.

    Usage:
        async def test_something(server, client_factory):
            async with client_factory() as client:
                reply = await client.request(["load", "key", {}])
    """
    def factory() -> AsyncFrameClient:
        return AsyncFrameClient('127.0.0.1', server_port)
    return factory


# ============================================================================
# Threaded Server Fixtures (for the blocking Channel)
# ============================================================================

class ServerThread:
    """
    Runs a KVServer on its own event loop in a background thread, so
    blocking Channel calls can be made from the test thread.
    """

    def __init__(self, server: KVServer):
        self.server = server
        self.loop = None
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> "ServerThread":
        self._thread.start()
        if not self._ready.wait(timeout=5):
            raise RuntimeError("server thread did not start")
        return self

    def stop(self) -> None:
        future = asyncio.run_coroutine_threadsafe(self.server.stop(), self.loop)
        future.result(timeout=5)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)

    def _run(self) -> None:
        self.loop = asyncio.new_event_loop()
        task = self.loop.create_task(self._serve())
        try:
            self.loop.run_forever()
            self.loop.run_until_complete(task)
        finally:
            self.loop.close()

    async def _serve(self) -> None:
        await self.server.listen()
        self._ready.set()
        await self.server.serve_forever()


@pytest.fixture
def engine() -> MemoryStore:
    """Engine backing the threaded server."""
    return MemoryStore(max_size=100)


@pytest.fixture
def running_server(engine: MemoryStore) -> Generator[KVServer, None, None]:
    """A KVServer on a free TCP port, served from a background thread."""
    srv = KVServer(host='127.0.0.1', port=find_free_port(), store=engine)
    thread = ServerThread(srv).start()
    yield srv
    thread.stop()


@pytest.fixture
def channel(running_server: KVServer) -> Generator[Channel, None, None]:
    """A Channel connected to running_server."""
    ch = connect((running_server.host, running_server.port), timeout=5)
    yield ch
    if not ch.closed:
        ch.close()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
