"""Frame encoding/decoding for the companion radio serial link.

Frames use a marker-prefixed, length-prefixed envelope:
  [1-byte marker][2-byte length][payload]

The marker is '<' for host -> device and '>' for device -> host. The length
is a little-endian unsigned 16-bit integer and never exceeds MAX_FRAME_SIZE.
There is no checksum and no resync: a bad marker is reported to the caller.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol

from meshcore.errors import (
    ProtocolError,
    ProtocolErrorKind,
    TransportError,
    TransportErrorKind,
    classify_serial_error,
)
from meshcore.protocol import TRACE

logger = logging.getLogger(__name__)

UINT16_SIZE = 2
UINT32_SIZE = 4
BYTE_ORDER: Literal["little", "big"] = "little"

HEADER_SIZE = 1 + UINT16_SIZE

# Maximum payload length (prevents huge allocations on corrupted length)
MAX_FRAME_SIZE = 512


class Direction(Enum):
    """Frame direction, each with its own marker byte."""

    TX = ord("<")  # host -> device
    RX = ord(">")  # device -> host


class Reader(Protocol):
    """Protocol for objects that can read bytes."""

    def read(self, size: int) -> bytes: ...


@dataclass(frozen=True)
class Frame:
    """One length-delimited envelope on the serial link."""

    direction: Direction
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)

    @property
    def code(self) -> int | None:
        """First payload byte (the opcode), or None for an empty frame."""
        return self.payload[0] if self.payload else None


def uint16_to_bytes(value: int) -> bytes:
    """Encode unsigned 16-bit int as little-endian bytes."""
    return value.to_bytes(UINT16_SIZE, BYTE_ORDER, signed=False)


def uint16_from_bytes(data: bytes) -> int:
    """Decode little-endian bytes to unsigned 16-bit int."""
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def uint32_to_bytes(value: int) -> bytes:
    """Encode unsigned 32-bit int as little-endian bytes."""
    return value.to_bytes(UINT32_SIZE, BYTE_ORDER, signed=False)


def encode_frame(payload: bytes, direction: Direction = Direction.TX) -> bytes:
    """Encode a payload with marker and length prefix."""
    if len(payload) > MAX_FRAME_SIZE:
        raise ProtocolError(
            ProtocolErrorKind.FRAME_TOO_LARGE,
            f"payload of {len(payload)} bytes exceeds max {MAX_FRAME_SIZE}",
        )
    return bytes([direction.value]) + uint16_to_bytes(len(payload)) + payload


def _read_exact(reader: Reader, size: int, what: str) -> bytes:
    """Read exactly size bytes, accumulating partial reads.

    A read returning no bytes means the port's read timeout expired.
    """
    buf = bytearray()
    while len(buf) < size:
        try:
            chunk = reader.read(size - len(buf))
        except OSError as e:
            raise classify_serial_error(e) from e
        if not chunk:
            raise TransportError(
                TransportErrorKind.TIMEOUT,
                f"timeout reading {what} (got {len(buf)}/{size} bytes)",
            )
        buf += chunk
    return bytes(buf)


def read_frame(reader: Reader) -> Frame:
    """Read one device -> host frame.

    Raises:
        TransportError: On timeout or port failure.
        ProtocolError: On a bad marker (BAD_HEADER) or an oversize length
            (FRAME_TOO_LARGE). The payload is not read in either case.
    """
    header = _read_exact(reader, HEADER_SIZE, "frame header")

    if header[0] != Direction.RX.value:
        raise ProtocolError(
            ProtocolErrorKind.BAD_HEADER,
            f"invalid frame header: got 0x{header[0]:02X}, expected 0x{Direction.RX.value:02X}",
            got=header[0],
            want=Direction.RX.value,
        )

    length = uint16_from_bytes(header[1:HEADER_SIZE])
    if length > MAX_FRAME_SIZE:
        raise ProtocolError(
            ProtocolErrorKind.FRAME_TOO_LARGE,
            f"frame length {length} exceeds max {MAX_FRAME_SIZE}",
            got=length,
            want=MAX_FRAME_SIZE,
        )

    payload = _read_exact(reader, length, "frame payload") if length else b""
    logger.log(TRACE, f"rx frame ({length} bytes): {payload.hex()}")
    return Frame(Direction.RX, payload)
