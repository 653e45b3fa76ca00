"""
Protocol Error Definitions

Every error raised by the codec or the client channel derives from
KVRemoteError. Errors are surfaced directly to the caller; nothing in
this package retries or reconnects.
"""


class KVRemoteError(Exception):
    """Base class for all kv-remote errors."""


class EncodingError(KVRemoteError):
    """A value cannot be serialized into a frame."""


class DecodingError(KVRemoteError):
    """Received bytes are not a valid frame."""


class ChannelConnectionError(KVRemoteError, ConnectionError):
    """The socket could not be opened, or broke during a call."""


class ChannelTimeoutError(ChannelConnectionError):
    """The peer did not accept or deliver bytes within the timeout."""


class ClosedChannelError(KVRemoteError):
    """An operation was attempted on a closed channel."""


class RemoteError(KVRemoteError):
    """
    The storage engine raised while handling a command.

    Attributes:
        kind: Class name of the exception raised on the server
        message: The exception message
    """

    def __init__(self, kind: str, message: str = ""):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}" if message else kind)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RemoteError):
            return NotImplemented
        return (self.kind, self.message) == (other.kind, other.message)

    def __hash__(self) -> int:
        return hash((self.kind, self.message))
