"""Protocol module for kv-remote."""

from .codec import Codec
from .commands import ABSENT, Command, Operation
from .errors import (
    ChannelConnectionError,
    ChannelTimeoutError,
    ClosedChannelError,
    DecodingError,
    EncodingError,
    KVRemoteError,
    RemoteError,
)

__all__ = [
    "ABSENT",
    "ChannelConnectionError",
    "ChannelTimeoutError",
    "ClosedChannelError",
    "Codec",
    "Command",
    "DecodingError",
    "EncodingError",
    "KVRemoteError",
    "Operation",
    "RemoteError",
]
