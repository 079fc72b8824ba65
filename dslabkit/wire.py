"""Binary encoding of failure-detector operations.

Each operation starts with a little-endian u32 variant index. Identifiers
are written as a little-endian u64 length (always 16) followed by the 16 raw
bytes of the UUID. A set of identifiers is written as a u64 element count
followed by the identifiers.
"""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Union

_VARIANT = struct.Struct("<I")
_LENGTH = struct.Struct("<Q")
_UUID_SIZE = 16

_HEARTBEAT_REQUEST = 0
_HEARTBEAT_RESPONSE = 1
_ALIVE_REQUEST = 2
_ALIVE_INFO = 3


class DecodeError(ValueError):
    """The bytes do not hold a valid detector operation."""


@dataclass(frozen=True)
class HeartbeatRequest:
    """Request to receive a heartbeat."""


@dataclass(frozen=True)
class HeartbeatResponse:
    """Response to a heartbeat request, carrying the responder's identifier."""

    ident: uuid.UUID


@dataclass(frozen=True)
class AliveRequest:
    """Request for the set of processes the receiver considers alive."""


@dataclass(frozen=True)
class AliveInfo:
    """The processes that are alive according to the sender."""

    alive: frozenset[uuid.UUID] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "alive", frozenset(self.alive))


Operation = Union[HeartbeatRequest, HeartbeatResponse, AliveRequest, AliveInfo]


def _encode_uuid(ident: uuid.UUID) -> bytes:
    return _LENGTH.pack(_UUID_SIZE) + ident.bytes


def _encode_uuids(idents: Iterable[uuid.UUID]) -> bytes:
    items = list(idents)
    return _LENGTH.pack(len(items)) + b"".join(_encode_uuid(i) for i in items)


def encode(operation: Operation) -> bytes:
    """Return the wire form of ``operation``."""
    match operation:
        case HeartbeatRequest():
            return _VARIANT.pack(_HEARTBEAT_REQUEST)
        case HeartbeatResponse(ident=ident):
            return _VARIANT.pack(_HEARTBEAT_RESPONSE) + _encode_uuid(ident)
        case AliveRequest():
            return _VARIANT.pack(_ALIVE_REQUEST)
        case AliveInfo(alive=alive):
            return _VARIANT.pack(_ALIVE_INFO) + _encode_uuids(alive)
        case _:
            raise TypeError(f"not a detector operation: {operation!r}")


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._pos = 0

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise DecodeError("unexpected end of data")
        chunk = self._data[self._pos : end].tobytes()
        self._pos = end
        return chunk

    def u32(self) -> int:
        return _VARIANT.unpack(self.take(_VARIANT.size))[0]

    def u64(self) -> int:
        return _LENGTH.unpack(self.take(_LENGTH.size))[0]

    def uuid(self) -> uuid.UUID:
        size = self.u64()
        if size != _UUID_SIZE:
            raise DecodeError(f"an identifier must have 16 bytes, not {size}")
        return uuid.UUID(bytes=self.take(_UUID_SIZE))


def decode(data: bytes) -> Operation:
    """Parse one operation from the start of ``data``; trailing bytes are ignored."""
    reader = _Reader(data)
    variant = reader.u32()
    if variant == _HEARTBEAT_REQUEST:
        return HeartbeatRequest()
    if variant == _HEARTBEAT_RESPONSE:
        return HeartbeatResponse(reader.uuid())
    if variant == _ALIVE_REQUEST:
        return AliveRequest()
    if variant == _ALIVE_INFO:
        count = reader.u64()
        return AliveInfo(frozenset(reader.uuid() for _ in range(count)))
    raise DecodeError(f"unknown operation variant {variant}")