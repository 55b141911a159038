"""Exception types for the MeshCore serial link.

Transport failures are classified into a TransportErrorKind where they are
raised (the frame codec and the port writer), so callers branch on the kind
rather than on message text.
"""

import errno
from enum import Enum

import serial


class TransportErrorKind(Enum):
    """Classification of transport failures."""

    TIMEOUT = "timeout"
    DEVICE_GONE = "device gone"
    IO = "i/o error"


class ProtocolErrorKind(Enum):
    """Classification of protocol (framing or payload) failures."""

    BAD_HEADER = "bad header"
    FRAME_TOO_LARGE = "frame too large"
    UNEXPECTED_OPCODE = "unexpected opcode"
    TRUNCATED = "truncated"
    REJECTED = "rejected"


class MeshcoreError(Exception):
    """Base class for all radio link errors."""

    pass


class TransportError(MeshcoreError):
    """Raised when reading or writing the physical channel fails."""

    def __init__(self, kind: TransportErrorKind, message: str) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind


class ProtocolError(MeshcoreError):
    """Raised when a frame or payload does not match the wire format."""

    def __init__(
        self,
        kind: ProtocolErrorKind,
        message: str,
        got: int | None = None,
        want: int | None = None,
    ) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.got = got
        self.want = want


class WaitTimeoutError(MeshcoreError):
    """Raised when no qualifying push frame arrives before the deadline."""

    pass


# Errno values that mean the port has gone away
_DEVICE_GONE_ERRNOS = frozenset({errno.EIO, errno.ENODEV, errno.ENXIO, errno.EPIPE})

# pyserial often folds the errno into the message text only, and reports
# an unplugged USB port with no errno at all
_DEVICE_GONE_MESSAGES = (
    "input/output error",
    "no such device",
    "broken pipe",
    "device not configured",
    "device disconnected",
)


def classify_serial_error(exc: OSError) -> TransportError:
    """Map an OSError or serial.SerialException to a typed TransportError."""
    if isinstance(exc, serial.SerialTimeoutException):
        return TransportError(TransportErrorKind.TIMEOUT, str(exc) or "write timeout")
    if exc.errno in _DEVICE_GONE_ERRNOS:
        return TransportError(TransportErrorKind.DEVICE_GONE, str(exc))
    text = str(exc).lower()
    if any(m in text for m in _DEVICE_GONE_MESSAGES):
        return TransportError(TransportErrorKind.DEVICE_GONE, str(exc))
    return TransportError(TransportErrorKind.IO, str(exc))


def is_fatal(exc: BaseException) -> bool:
    """Return True if an error means the device stopped responding.

    Fatal errors are a vanished port or a framing-header mismatch; plain read
    timeouts and payload errors are not.
    """
    if isinstance(exc, TransportError):
        return exc.kind is TransportErrorKind.DEVICE_GONE
    if isinstance(exc, ProtocolError):
        return exc.kind is ProtocolErrorKind.BAD_HEADER
    return False
