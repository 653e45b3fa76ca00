"""
In-Memory Storage Engine

This module implements the storage engine served by KVServer. Its public
methods mirror the wire operations one to one, each taking the options
map sent by the client as its last argument.
"""

import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Tuple

from ..config.settings import settings
from ..protocol.commands import ABSENT


class MemoryStore:
    """
    In-memory key-value engine with expiry and LRU eviction.

    Operations:
    - key_exists: Check if a key exists
    - load: Retrieve a value, or ABSENT
    - store: Insert or update a key-value pair
    - delete: Remove a key-value pair
    - clear: Remove every key

    Options understood by store():
        expires: Lifetime in seconds (0 or missing = never expires)

    Unknown options are ignored.

    Internal Storage:
        key -> (value, expiration_timestamp), kept in LRU order.
        expiration_timestamp = 0 means no expiration.

    Attributes:
        max_size: Maximum number of keys allowed in the store
        read_only: Reject store, delete and clear with PermissionError
    """

    def __init__(self, max_size: int = None, read_only: bool = False):
        self.max_size = max_size if max_size is not None else settings.MAX_KEYS
        if self.max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {self.max_size}")
        self.read_only = read_only
        self._store: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()

    def key_exists(self, key: Hashable, options: Optional[dict] = None) -> bool:
        """Return True if key exists and has not expired."""
        return self._lookup(key) is not None

    def load(self, key: Hashable, options: Optional[dict] = None) -> Any:
        """
        Retrieve the value for key.

        Returns:
            The stored value, or ABSENT if missing or expired
        """
        entry = self._lookup(key)
        if entry is None:
            return ABSENT

        self._store.move_to_end(key)
        return entry[0]

    def store(self, key: Hashable, value: Any, options: Optional[dict] = None) -> Any:
        """
        Insert or update a key-value pair.

        Returns:
            The stored value

        Raises:
            PermissionError: if the store is read-only
            ValueError: if the expires option is not a non-negative number
        """
        self._check_writable()
        expires = (options or {}).get("expires", 0)
        if isinstance(expires, bool) or not isinstance(expires, (int, float)) or expires < 0:
            raise ValueError(f"expires must be a non-negative number, got {expires!r}")
        expires_at = time.time() + expires if expires > 0 else 0

        if key in self._store:
            self._store[key] = (value, expires_at)
            self._store.move_to_end(key)
            return value

        # Evict LRU if at capacity
        if len(self._store) >= self.max_size:
            self._store.popitem(last=False)

        self._store[key] = (value, expires_at)
        return value

    def delete(self, key: Hashable, options: Optional[dict] = None) -> bool:
        """
        Delete a key-value pair.

        Returns:
            True if the key was present, False otherwise
        """
        self._check_writable()
        if self._lookup(key) is None:
            return False

        del self._store[key]
        return True

    def clear(self, options: Optional[dict] = None) -> None:
        """Remove all keys from the store."""
        self._check_writable()
        self._store.clear()

    def size(self) -> int:
        """
        Get the current number of keys in the store.

        Note: This may include expired keys that haven't been cleaned up yet.
        """
        return len(self._store)

    def cleanup_expired(self) -> int:
        """
        Remove all expired keys from the store.

        Returns:
            Number of keys removed
        """
        now = time.time()
        to_delete = [k for k, (_, exp) in self._store.items() if exp and exp <= now]
        for key in to_delete:
            self._store.pop(key, None)
        return len(to_delete)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary containing total_keys, expired_keys, active_keys,
            max_size, utilization and read_only
        """
        now = time.time()
        total = len(self._store)
        expired = sum(1 for _, (_, expires_at) in self._store.items() if 0 < expires_at <= now)

        return {
            "total_keys": total,
            "expired_keys": expired,
            "active_keys": total - expired,
            "max_size": self.max_size,
            "utilization": total / self.max_size if self.max_size > 0 else 0,
            "read_only": self.read_only,
        }

    def _lookup(self, key: Hashable) -> Optional[Tuple[Any, float]]:
        # Raises TypeError for unhashable keys, reported to the client
        entry = self._store.get(key)
        if entry is None:
            return None

        if entry[1] and entry[1] <= time.time():
            # Lazy expiration
            self._store.pop(key, None)
            return None
        return entry

    def _check_writable(self) -> None:
        if self.read_only:
            raise PermissionError("store is read-only")
