"""MeshCore companion radio link for meshcore-stats.

This package contains the serial protocol engine:
- protocol: opcode enums, SerialPort Protocol, timing constants
- frame: frame envelope encoding/decoding
- encoding: command builders and response/push parsers
- model: typed records (contacts, self info, stats, region presets)
- errors: typed transport/protocol errors and fatal classification
- contacts: contact directory for sender attribution
- push: push notification dispatch
- device: serial device setup
- radio: the locked command/response session
"""

from meshcore.contacts import ContactDirectory
from meshcore.errors import (
    MeshcoreError,
    ProtocolError,
    ProtocolErrorKind,
    TransportError,
    TransportErrorKind,
    WaitTimeoutError,
    is_fatal,
)
from meshcore.model import REGIONS, Contact, RadioRegion, SelfInfo
from meshcore.push import PushDispatcher
from meshcore.radio import Radio

__all__ = [
    # Session
    "Radio",
    "PushDispatcher",
    "ContactDirectory",
    # Records
    "Contact",
    "SelfInfo",
    "RadioRegion",
    "REGIONS",
    # Exceptions
    "MeshcoreError",
    "ProtocolError",
    "ProtocolErrorKind",
    "TransportError",
    "TransportErrorKind",
    "WaitTimeoutError",
    "is_fatal",
]
