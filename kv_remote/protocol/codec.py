"""
Frame Codec Module

Converts commands and replies to length-prefixed msgpack frames and back.
The same Codec is used by the client channel and the server loop.

Wire format:
    [4 bytes big-endian uint32: payload length][msgpack payload]

A command payload is the array [tag, *args]; a reply payload is the bare
result value. Two extension types carry values msgpack has no native form
for: the ABSENT marker and a RemoteError raised by the storage engine.
"""

import struct
from typing import Any, Optional

import msgpack

from ..config.settings import settings
from .commands import ABSENT, Command
from .errors import DecodingError, EncodingError, RemoteError

# 4-byte big-endian unsigned int header
HEADER_FORMAT = "!I"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# Extension type codes
EXT_ABSENT = 1
EXT_REMOTE_ERROR = 2


class Codec:
    """
    Deterministic encoder/decoder for protocol frames.

    The codec holds no per-connection state, so one instance can be shared
    by any number of channels or server connections.

    Examples:
        >>> codec = Codec()
        >>> frame = codec.encode(["load", "key", {}])
        >>> codec.decode(frame)
        ['load', 'key', {}]
    """

    def __init__(self, max_frame_size: Optional[int] = None):
        self.max_frame_size = (
            max_frame_size if max_frame_size is not None else settings.MAX_FRAME_SIZE
        )

    def encode(self, value: Any) -> bytes:
        """
        Encode a Command, or a reply value, into one frame.

        Raises:
            EncodingError: if the value is not representable, or the
                payload exceeds max_frame_size
        """
        if isinstance(value, Command):
            value = value.to_wire()

        try:
            payload = msgpack.packb(value, use_bin_type=True, default=self._pack_ext)
        except (TypeError, ValueError, OverflowError) as exc:
            raise EncodingError(f"cannot encode value: {exc}") from exc

        if len(payload) > self.max_frame_size:
            raise EncodingError(
                f"frame size {len(payload)} exceeds maximum {self.max_frame_size}"
            )
        return struct.pack(HEADER_FORMAT, len(payload)) + payload

    def decode(self, frame: bytes) -> Any:
        """
        Decode one complete frame (header included).

        Raises:
            DecodingError: if the frame is truncated, carries trailing
                bytes, or holds malformed msgpack
        """
        if len(frame) < HEADER_SIZE:
            raise DecodingError(f"frame too short: {len(frame)} bytes")

        length = self.payload_length(frame[:HEADER_SIZE])
        payload = frame[HEADER_SIZE:]
        if len(payload) != length:
            raise DecodingError(
                f"frame declares {length} payload bytes, got {len(payload)}"
            )
        return self.decode_payload(payload)

    def payload_length(self, header: bytes) -> int:
        """Extract and validate the payload length from a frame header."""
        if len(header) != HEADER_SIZE:
            raise DecodingError(f"header must be {HEADER_SIZE} bytes, got {len(header)}")

        (length,) = struct.unpack(HEADER_FORMAT, header)
        if length > self.max_frame_size:
            raise DecodingError(
                f"payload length {length} exceeds maximum {self.max_frame_size}"
            )
        return length

    def decode_payload(self, payload: bytes) -> Any:
        """Deserialize a msgpack payload whose length is already known."""
        try:
            return msgpack.unpackb(
                payload,
                raw=False,
                strict_map_key=False,
                object_pairs_hook=self._pairs_to_map,
                ext_hook=self._unpack_ext,
            )
        except DecodingError:
            raise
        except (ValueError, TypeError, msgpack.UnpackException) as exc:
            raise DecodingError(f"malformed payload: {exc}") from exc

    @classmethod
    def _pairs_to_map(cls, pairs) -> dict:
        # Arrays used as map keys were tuples on the sending side
        return {cls._map_key(key): value for key, value in pairs}

    @classmethod
    def _map_key(cls, key: Any) -> Any:
        if isinstance(key, list):
            return tuple(cls._map_key(item) for item in key)
        return key

    @staticmethod
    def _pack_ext(obj: Any) -> msgpack.ExtType:
        if obj is ABSENT:
            return msgpack.ExtType(EXT_ABSENT, b"")
        if isinstance(obj, RemoteError):
            data = msgpack.packb([obj.kind, obj.message], use_bin_type=True)
            return msgpack.ExtType(EXT_REMOTE_ERROR, data)
        raise TypeError(f"unsupported type {type(obj).__name__}")

    @staticmethod
    def _unpack_ext(code: int, data: bytes) -> Any:
        if code == EXT_ABSENT:
            return ABSENT
        if code == EXT_REMOTE_ERROR:
            fields = msgpack.unpackb(data, raw=False)
            if not isinstance(fields, list) or len(fields) != 2:
                raise DecodingError("malformed remote error")
            return RemoteError(str(fields[0]), str(fields[1]))
        raise DecodingError(f"unknown extension type {code}")
