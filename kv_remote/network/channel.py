"""
Client Channel Module

A Channel owns one connected socket and turns it into a synchronous RPC
channel for key-value commands: write one frame, then block until one
reply frame has been read, for every operation that returns a value.

store is fire-and-forget. It writes its frame and returns the value it was
given without reading anything back, so a write rejected by the server is
invisible to the caller.

A channel must be used by one caller at a time. Calling operations on the
same channel from several threads concurrently is undefined.
"""

import logging
import os
import socket
from typing import Any, Mapping, Optional, Tuple, Union

from ..config.settings import settings
from ..protocol.codec import HEADER_SIZE, Codec
from ..protocol.commands import ABSENT, Command, Operation
from ..protocol.errors import (
    ChannelConnectionError,
    ChannelTimeoutError,
    ClosedChannelError,
    DecodingError,
    RemoteError,
)

logger = logging.getLogger(__name__)

Address = Union[str, "os.PathLike[str]", Tuple[Optional[str], Optional[int]], Mapping[str, Any], None]


def resolve_address(address: Address = None) -> Tuple[int, Any]:
    """
    Resolve an address into (socket family, socket address).

    Accepted forms:
        None                      -> TCP on the default host and port
        "/path/to/sock"           -> Unix-domain socket
        ("host", 9000)            -> TCP; either item may be None
        {"file": ...} or
        {"host": ..., "port": ...} -> as above

    Examples:
        >>> resolve_address(("example.com", None))[1]
        ('example.com', 9000)
    """
    if isinstance(address, Mapping):
        if address.get("file"):
            return socket.AF_UNIX, os.fspath(address["file"])
        address = (address.get("host"), address.get("port"))

    if isinstance(address, (str, os.PathLike)):
        return socket.AF_UNIX, os.fspath(address)

    host, port = address if address is not None else (None, None)
    return socket.AF_INET, (
        host if host is not None else settings.HOST,
        int(port) if port is not None else settings.PORT,
    )


class Channel:
    """
    Blocking, strictly sequential key-value channel over one socket.

    Usage:
        with connect(("127.0.0.1", 9000)) as channel:
            channel.store("a", "1")
            channel.load("a")          # -> "1"
            channel.load("missing")    # -> ABSENT

    Attributes:
        codec: Codec shared with the server side of the protocol
        timeout: Seconds to wait on the socket (None blocks forever)
    """

    def __init__(
            self,
            sock: socket.socket,
            codec: Codec = None,
            timeout: Optional[float] = None,
    ):
        self.codec = codec if codec is not None else Codec()
        self.timeout = timeout
        self._sock = sock
        self._sock.settimeout(timeout)
        self._closed = False
        self._broken: Optional[str] = None

    @classmethod
    def connect(
            cls,
            address: Address = None,
            timeout: Optional[float] = settings.CLIENT_TIMEOUT,
            codec: Codec = None,
    ) -> "Channel":
        """
        Open a socket to a kv-remote server.

        Raises:
            ChannelConnectionError: if the socket cannot be established
        """
        family, sockaddr = resolve_address(address)
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
            if family == socket.AF_INET:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as exc:
            sock.close()
            raise ChannelConnectionError(f"cannot connect to {sockaddr}: {exc}") from exc

        logger.debug(f"Connected to {sockaddr}")
        return cls(sock, codec=codec, timeout=timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def key_exists(self, key: Any, options: Optional[Mapping] = None) -> bool:
        """Return whether key exists on the remote store."""
        return self._call(Operation.KEY_EXISTS, key, self._options(options))

    def load(self, key: Any, options: Optional[Mapping] = None) -> Any:
        """Return the value stored under key, or ABSENT."""
        return self._call(Operation.LOAD, key, self._options(options))

    def store(self, key: Any, value: Any, options: Optional[Mapping] = None) -> Any:
        """
        Queue a write of value under key and return value.

        No reply is read: the write is only guaranteed to be ordered
        before later commands on this channel, not to have been applied.
        """
        self._call(Operation.STORE, key, value, self._options(options))
        return value

    def delete(self, key: Any, options: Optional[Mapping] = None) -> bool:
        """Delete key; return whether it was present."""
        return self._call(Operation.DELETE, key, self._options(options))

    def clear(self, options: Optional[Mapping] = None) -> "Channel":
        """Remove every key and return the channel for chaining."""
        self._call(Operation.CLEAR, self._options(options))
        return self

    def fetch(self, key: Any, default: Any = None, options: Optional[Mapping] = None) -> Any:
        """Like load(), returning default when the key is absent."""
        value = self.load(key, options)
        return default if value is ABSENT else value

    def close(self) -> None:
        """
        Release the socket.

        Shutting the socket down first wakes up a call blocked in another
        thread, which then fails with ChannelConnectionError.

        Raises:
            ClosedChannelError: if the channel is already closed
        """
        if self._closed:
            raise ClosedChannelError("channel is already closed")

        self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass
        self._sock.close()
        logger.debug("Channel closed")

    def __getitem__(self, key: Any) -> Any:
        value = self.load(key)
        if value is ABSENT:
            raise KeyError(key)
        return value

    def __setitem__(self, key: Any, value: Any) -> None:
        self.store(key, value)

    def __contains__(self, key: Any) -> bool:
        return self.key_exists(key)

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self._closed:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "broken" if self._broken else "open"
        return f"<Channel {state}>"

    @staticmethod
    def _options(options: Optional[Mapping]) -> dict:
        return dict(options) if options is not None else {}

    def _call(self, operation: Operation, *args: Any) -> Any:
        if self._closed:
            raise ClosedChannelError(f"cannot {operation.value} on a closed channel")
        if self._broken:
            raise ChannelConnectionError(f"channel is broken ({self._broken}); close it and reconnect")

        # Encoding failures happen before any byte is written
        frame = self.codec.encode(Command.build(operation, *args))
        self._send(frame)
        if not operation.expects_reply:
            return None

        reply = self._receive()
        if isinstance(reply, RemoteError):
            raise reply
        return reply

    def _send(self, frame: bytes) -> None:
        try:
            self._sock.sendall(frame)
        except socket.timeout as exc:
            raise self._fail(ChannelTimeoutError("timed out sending command")) from exc
        except OSError as exc:
            raise self._fail(ChannelConnectionError(f"send failed: {exc}")) from exc

    def _receive(self) -> Any:
        try:
            length = self.codec.payload_length(self._read_exactly(HEADER_SIZE))
            return self.codec.decode_payload(self._read_exactly(length))
        except DecodingError as exc:
            raise self._fail(exc)

    def _read_exactly(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            try:
                chunk = self._sock.recv(min(size - len(buf), settings.READ_BUFFER_SIZE))
            except socket.timeout as exc:
                raise self._fail(ChannelTimeoutError("timed out waiting for reply")) from exc
            except OSError as exc:
                raise self._fail(ChannelConnectionError(f"receive failed: {exc}")) from exc
            if not chunk:
                raise self._fail(ChannelConnectionError("connection closed by peer"))
            buf += chunk
        return bytes(buf)

    def _fail(self, exc: Exception) -> Exception:
        # The stream position is unknown from here on
        self._broken = str(exc)
        return exc


def connect(
        address: Address = None,
        timeout: Optional[float] = settings.CLIENT_TIMEOUT,
        codec: Codec = None,
) -> Channel:
    """Open a Channel; see Channel.connect."""
    return Channel.connect(address, timeout=timeout, codec=codec)
