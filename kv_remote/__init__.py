"""
kv-remote: Remote Key-Value Store Adapter

Exposes a key-value store's operations (key?, load, store, delete, clear)
over one persistent TCP or Unix-domain socket, so a client can treat a
remote store as if it were local.
"""

from .network.channel import Channel, connect
from .protocol.commands import ABSENT

__version__ = "1.0.0"

__all__ = ["ABSENT", "Channel", "connect"]
