"""Protocol definitions for the MeshCore companion radio serial link.

Contains:
- CommandCode, ResponseCode, PushCode, StatsType enums
- SerialPort Protocol for type checking
- Frame and timing constants
- TRACE logging level
"""

import logging
from enum import IntEnum
from typing import Protocol

# TRACE logging level (below DEBUG), used for per-frame wire dumps
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class CommandCode(IntEnum):
    """Host -> device command opcodes."""

    APP_START = 1
    GET_CONTACTS = 4
    GET_VERSION = 10
    SET_RADIO_PARAMS = 11
    SET_RADIO_TX_POWER = 12
    REBOOT = 19
    SEND_LOGIN = 26
    SEND_STATUS_REQ = 27
    SEND_TELEMETRY_REQ = 39
    SEND_BINARY_REQ = 50
    GET_STATS = 56


class ResponseCode(IntEnum):
    """Device -> host synchronous response codes."""

    OK = 0
    ERR = 1
    CONTACTS_START = 2
    CONTACT = 3
    END_OF_CONTACTS = 4
    SELF_INFO = 5
    SENT = 6
    VERSION = 8
    STATS = 24


class PushCode(IntEnum):
    """Device -> host push codes (unsolicited or delayed results)."""

    LOGIN_SUCCESS = 0x85
    LOGIN_FAIL = 0x86
    STATUS_RESPONSE = 0x87
    LOG_RX_DATA = 0x88
    TELEMETRY_RESPONSE = 0x8B
    BINARY_RESPONSE = 0x8C


class StatsType(IntEnum):
    """Stats-type discriminant for get-stats."""

    CORE = 0
    RADIO = 1
    PACKETS = 2


class SerialPort(Protocol):
    """Protocol for serial port operations needed by the radio session."""

    timeout: float | None

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    def close(self) -> None: ...


# First byte at or above this value marks a push notification
PUSH_CODE_MIN = 0x80

# Sub-type byte of send-binary-request asking for owner info
REQ_TYPE_GET_OWNER_INFO = 0x07

PUBKEY_SIZE = 32

REBOOT_GUARD = b"reboot"

# Client identifier embedded in app-start
APP_START_VERSION = 0x03
APP_START_CLIENT_ID = b"mccli"
APP_START_SIZE = 11

# Serial defaults
DEFAULT_BAUDRATE = 115200
DEFAULT_READ_TIMEOUT_S = 2.0
DEFAULT_WRITE_TIMEOUT_S = 1.0
DRAIN_READ_TIMEOUT_S = 0.1

# How long to wait for a delayed push reply (login, status)
PUSH_WAIT_TIMEOUT_S = 30.0


def is_push_code(code: int) -> bool:
    """Return True if an opcode belongs to the push range."""
    return code >= PUSH_CODE_MIN
