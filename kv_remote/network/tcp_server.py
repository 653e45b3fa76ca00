"""
Async Server Module

This module implements the asyncio server side of the kv-remote protocol.
It listens on a TCP port or a Unix-domain socket path and runs one
dispatch loop per connection against a shared storage engine.

Protocol flow per connection:
    1. Read one frame (4-byte length header, then the payload)
    2. Decode it into a Command
    3. Call the matching storage engine method
    4. Write the encoded result back, unless the command is store
    5. Repeat until the client disconnects or sends a malformed frame
"""

import asyncio
import logging
import os
from asyncio import StreamReader, StreamWriter
from typing import Any, Optional, Set

from ..cache.store import MemoryStore
from ..config.settings import settings
from ..protocol.codec import HEADER_SIZE, Codec
from ..protocol.commands import Command
from ..protocol.errors import DecodingError, EncodingError, RemoteError

logger = logging.getLogger(__name__)


class KVServer:
    """
    Asynchronous server exposing a storage engine over the kv-remote protocol.

    Each client connection is handled in its own coroutine. A malformed
    frame or a disconnect ends that connection only; the listener keeps
    accepting others.

    The storage engine is any object with key_exists, load, store, delete
    and clear methods taking the wire arguments (options last).

    Usage:
        server = KVServer(host='127.0.0.1', port=9000)
        await server.start()  # Runs forever

        server = KVServer(path='/tmp/kv.sock')  # Unix-domain socket

    Attributes:
        host: Server bind address, ignored when path is set
        port: Server port number, ignored when path is set
        path: Unix-domain socket path, or None for TCP
        store: The storage engine shared by all connections
        codec: The Codec used for every frame
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            path: str = None,
            store: Any = None,
            codec: Codec = None,
    ):
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.path = path
        self.store = store if store is not None else MemoryStore()
        self.codec = codec if codec is not None else Codec()

        # Server state
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: Set[StreamWriter] = set()
        self._running = False
        self._connection_count = 0
        self._total_requests = 0

    async def handle_client(
            self,
            reader: StreamReader,
            writer: StreamWriter
    ) -> None:
        """
        Handle a single client connection.

        Reads frames until the client disconnects, dispatching each to the
        storage engine and replying in order. Frames that cannot be decoded
        terminate the connection, since the stream can no longer be trusted.
        """
        addr = writer.get_extra_info('peername') or self.path
        self._connection_count += 1
        self._writers.add(writer)
        logger.debug(f"Client connected: {addr}")

        try:
            while True:
                try:
                    header = await reader.readexactly(HEADER_SIZE)
                except asyncio.IncompleteReadError as exc:
                    if exc.partial:
                        logger.warning(f"Truncated frame header from {addr}")
                    else:
                        logger.debug(f"Client disconnected: {addr}")
                    break

                payload = await reader.readexactly(self.codec.payload_length(header))
                command = Command.from_wire(self.codec.decode_payload(payload))
                self._total_requests += 1

                result = self._execute_command(command)
                if not command.operation.expects_reply:
                    continue

                writer.write(self._encode_reply(result))
                await writer.drain()

        except DecodingError as exc:
            logger.warning(f"Malformed frame from {addr}, closing connection: {exc}")
        except asyncio.IncompleteReadError:
            logger.warning(f"Truncated frame from {addr}")
        except ConnectionError:
            logger.debug(f"Connection lost to client: {addr}")
        except Exception as exc:  # Log unexpected errors but keep server alive
            logger.exception(f"Error handling client {addr}: {exc}")
        finally:
            self._writers.discard(writer)
            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    def _execute_command(self, command: Command) -> Any:
        """
        Run a command on the storage engine.

        Returns:
            The engine's result, or a RemoteError describing the exception
            the engine raised. Failures of fire-and-forget commands are
            only logged, since nobody reads their reply.
        """
        handler = getattr(self.store, command.operation.handler_name)
        try:
            return handler(*command.args)
        except Exception as exc:
            if not command.operation.expects_reply:
                logger.warning(f"Rejected {command.operation.value}: {type(exc).__name__}: {exc}")
                return None
            logger.debug(f"{command.operation.value} failed: {type(exc).__name__}: {exc}")
            return RemoteError(type(exc).__name__, str(exc))

    def _encode_reply(self, result: Any) -> bytes:
        try:
            return self.codec.encode(result)
        except EncodingError as exc:
            logger.warning(f"Cannot encode reply: {exc}")
            return self.codec.encode(RemoteError(type(exc).__name__, str(exc)))

    async def listen(self) -> None:
        """Bind the listening socket without serving yet."""
        if self._server is not None:
            return

        if self.path:
            self._server = await asyncio.start_unix_server(
                self.handle_client,
                path=self.path,
                limit=settings.READ_BUFFER_SIZE,
            )
        else:
            self._server = await asyncio.start_server(
                self.handle_client,
                self.host,
                self.port,
                limit=settings.READ_BUFFER_SIZE,
            )

        addrs = ', '.join(str(sock.getsockname()) for sock in self._server.sockets or [])
        logger.info(f"Serving on {addrs}")

    async def serve_forever(self) -> None:
        """Accept connections until stop() is called or the task is cancelled."""
        await self.listen()
        self._running = True
        try:
            async with self._server:
                await self._server.serve_forever()
        except asyncio.CancelledError:
            # Expected during shutdown/fixture cleanup
            logger.debug("Server stopped serving")
        finally:
            self._running = False

    async def start(self) -> None:
        """
        Start the server and begin accepting connections.

        Example:
            server = KVServer(port=9000)
            asyncio.run(server.start())
        """
        if self._running:
            return
        await self.serve_forever()

    async def stop(self) -> None:
        """
        Stop the server gracefully.

        Closes the listener and every open client connection, then waits
        for the server to shut down.
        """
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()
        for writer in list(self._writers):
            writer.close()
        try:
            await server.wait_closed()
        finally:
            self._running = False
            if self.path:
                try:
                    os.unlink(self.path)
                except FileNotFoundError:
                    pass

    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    def get_stats(self) -> dict:
        """
        Get server statistics.

        Returns:
            Dictionary with server stats including connection counts,
            request counts, and store statistics.
        """
        stats = {
            "running": self._running,
            "address": self.path or f"{self.host}:{self.port}",
            "total_connections": self._connection_count,
            "active_connections": len(self._writers),
            "total_requests": self._total_requests,
        }
        if hasattr(self.store, "get_stats"):
            stats["store_stats"] = self.store.get_stats()
        return stats


async def run_server(host: str = None, port: int = None, path: str = None, store: Any = None) -> None:
    """
    Convenience function to create and run the server.

    Usage:
        asyncio.run(run_server(port=9000))
    """
    server = KVServer(host=host, port=port, path=path, store=store)

    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await server.stop()
