"""Storage engine module for kv-remote."""

from .store import MemoryStore

__all__ = ["MemoryStore"]
