"""Network module for kv-remote."""

from .channel import Channel, connect
from .tcp_server import KVServer, run_server

__all__ = ["Channel", "KVServer", "connect", "run_server"]
