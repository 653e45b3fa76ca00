"""
Protocol Command Definitions

This module defines the commands exchanged over a channel and the
absent marker returned by load for missing keys.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple

from .errors import DecodingError, EncodingError, RemoteError


class Operation(Enum):
    """Enumeration of supported operations, valued by their wire tag."""
    KEY_EXISTS = "key?"
    LOAD = "load"
    STORE = "store"
    DELETE = "delete"
    CLEAR = "clear"

    @property
    def expects_reply(self) -> bool:
        """store is fire-and-forget; every other operation gets one reply."""
        return self is not Operation.STORE

    @property
    def arity(self) -> int:
        """Number of wire arguments following the tag (options included)."""
        return _ARITY[self]

    @property
    def handler_name(self) -> str:
        """Name of the storage engine method serving this operation."""
        return _HANDLERS[self]


_ARITY = {
    Operation.KEY_EXISTS: 2,
    Operation.LOAD: 2,
    Operation.STORE: 3,
    Operation.DELETE: 2,
    Operation.CLEAR: 1,
}

_HANDLERS = {
    Operation.KEY_EXISTS: "key_exists",
    Operation.LOAD: "load",
    Operation.STORE: "store",
    Operation.DELETE: "delete",
    Operation.CLEAR: "clear",
}


class _Absent:
    """Type of the ABSENT singleton."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self):
        return (_Absent, ())


# Returned by load() for missing keys; distinct from None, b"" and "".
ABSENT = _Absent()


@dataclass(frozen=True)
class Command:
    """
    Represents one protocol command.

    Attributes:
        operation: The operation to perform
        args: Ordered wire arguments; the options map is always last
    """
    operation: Operation
    args: Tuple[Any, ...] = ()

    @classmethod
    def build(cls, operation: Operation, *args: Any) -> "Command":
        """Create a command, checking the argument count for the operation."""
        if len(args) != operation.arity:
            raise TypeError(
                f"{operation.value} takes {operation.arity} arguments, got {len(args)}"
            )
        if _holds_reserved(args):
            raise EncodingError(
                f"ABSENT and RemoteError are reply markers, not {operation.value} arguments"
            )
        return cls(operation=operation, args=tuple(args))

    @property
    def options(self) -> dict:
        return self.args[-1]

    def to_wire(self) -> list:
        """Return the ordered tuple [tag, *args] sent on the wire."""
        return [self.operation.value, *self.args]

    @classmethod
    def from_wire(cls, message: Any) -> "Command":
        """
        Rebuild a command from a decoded [tag, *args] message.

        Raises:
            DecodingError: if the tag is unknown, the argument count does
                not match the operation, the options are not a map, or an
                argument carries ABSENT or a RemoteError
        """
        if not isinstance(message, (list, tuple)) or not message:
            raise DecodingError(f"command must be a non-empty array, got {type(message).__name__}")

        tag, args = message[0], tuple(message[1:])
        try:
            operation = Operation(tag)
        except ValueError:
            raise DecodingError(f"unknown operation {tag!r}") from None

        if len(args) != operation.arity:
            raise DecodingError(
                f"{operation.value} expects {operation.arity} arguments, got {len(args)}"
            )
        if not isinstance(args[-1], dict):
            raise DecodingError(f"options for {operation.value} must be a map")
        if _holds_reserved(args):
            raise DecodingError(f"{operation.value} arguments carry a reply marker")

        return cls(operation=operation, args=args)


def _holds_reserved(value: Any) -> bool:
    """Return True if value contains ABSENT or a RemoteError at any depth."""
    if value is ABSENT or isinstance(value, RemoteError):
        return True
    if isinstance(value, dict):
        return any(_holds_reserved(k) or _holds_reserved(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return any(_holds_reserved(item) for item in value)
    return False
