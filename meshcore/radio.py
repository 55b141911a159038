"""Transport session for a MeshCore companion radio.

The serial link is half-duplex and only one side drives it at a time. Every
exchange (write, then read until the reply) runs under a single lock, so at
most one request is ever in flight. Push frames (opcode >= 0x80) may arrive
before any reply; send_command hands them to the push handler inline and
keeps reading. wait_for_push_code is the exception: it is waiting for one
specific delayed reply and discards everything else.
"""

import functools
import logging
import threading
import time
from collections.abc import Callable, Collection, Iterator
from contextlib import contextmanager

from meshcore import encoding
from meshcore.device import open_serial
from meshcore.errors import (
    TransportError,
    TransportErrorKind,
    WaitTimeoutError,
    classify_serial_error,
)
from meshcore.frame import HEADER_SIZE, MAX_FRAME_SIZE, Frame, encode_frame, read_frame
from meshcore.model import (
    Contact,
    RadioRegion,
    SelfInfo,
    SentAck,
    StatsCore,
    StatsPackets,
    StatsRadio,
)
from meshcore.protocol import (
    DEFAULT_READ_TIMEOUT_S,
    DRAIN_READ_TIMEOUT_S,
    TRACE,
    ResponseCode,
    SerialPort,
    StatsType,
    is_push_code,
)

logger = logging.getLogger(__name__)

PortOpener = Callable[[], SerialPort]
PushHandler = Callable[[bytes], None]

# Upper bound on bytes discarded by one drain (a chattering device never goes quiet)
MAX_DRAIN_BYTES = 64 * 1024


class Radio:
    """Command/response session over one serial port."""

    def __init__(
        self,
        opener: PortOpener,
        on_push: PushHandler | None = None,
        default_timeout_s: float = DEFAULT_READ_TIMEOUT_S,
    ) -> None:
        self._opener = opener
        self._lock = threading.Lock()
        self._default_timeout_s = default_timeout_s
        self.on_push = on_push
        self._port = self._open_port()

    @classmethod
    def open(cls, device: str, baudrate: int, on_push: PushHandler | None = None) -> "Radio":
        """Open a radio on a serial device path."""
        return cls(functools.partial(open_serial, device, baudrate), on_push=on_push)

    def _open_port(self) -> SerialPort:
        try:
            port = self._opener()
        except OSError as e:
            raise classify_serial_error(e) from e
        port.timeout = self._default_timeout_s
        return port

    # -------------------------------------------------------------------------
    # Low-level I/O (caller holds the lock)
    # -------------------------------------------------------------------------

    def _write(self, payload: bytes) -> None:
        frame = encode_frame(payload)
        logger.log(TRACE, f"tx frame ({len(payload)} bytes): {payload.hex()}")
        try:
            self._port.write(frame)
        except OSError as e:
            raise classify_serial_error(e) from e

    def _read_frame(self) -> Frame:
        return read_frame(self._port)

    def _read_response(self) -> bytes:
        """Read until the first non-push frame, dispatching pushes on the way."""
        while True:
            frame = self._read_frame()
            if frame.code is not None and is_push_code(frame.code):
                self._dispatch(frame.payload)
                continue
            return frame.payload

    def _dispatch(self, payload: bytes) -> None:
        if self.on_push is None:
            logger.debug(f"No push handler, dropping push 0x{payload[0]:02X}")
            return
        self.on_push(payload)

    @contextmanager
    def _read_timeout(self, seconds: float) -> Iterator[None]:
        """Override the port read timeout, restoring the default on exit."""
        self._port.timeout = seconds
        try:
            yield
        finally:
            try:
                self._port.timeout = self._default_timeout_s
            except OSError as e:
                logger.debug(f"Failed to restore read timeout: {e}")

    # -------------------------------------------------------------------------
    # Session operations
    # -------------------------------------------------------------------------

    def send_command(self, payload: bytes) -> bytes:
        """Write a command and return its response payload.

        Raises:
            TransportError: On write failure, read timeout or a vanished port.
            ProtocolError: On a malformed frame.
        """
        with self._lock:
            self._write(payload)
            return self._read_response()

    def wait_for_push_code(self, want_codes: Collection[int], timeout_s: float) -> bytes:
        """Block until a push frame with one of want_codes arrives.

        Frames with other codes are discarded, not dispatched. Each read is
        bounded by the time left before the deadline.

        Raises:
            WaitTimeoutError: If no matching frame arrives within timeout_s.
            TransportError: On a port failure other than a read timeout.
            ProtocolError: On a malformed frame.
        """
        wanted = set(want_codes)
        with self._lock:
            deadline = time.monotonic() + timeout_s
            with self._read_timeout(timeout_s):
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._port.timeout = remaining
                    try:
                        frame = self._read_frame()
                    except TransportError as e:
                        if e.kind is TransportErrorKind.TIMEOUT:
                            raise WaitTimeoutError(
                                f"timeout ({timeout_s}s) waiting for push {_codes(wanted)}"
                            ) from e
                        raise
                    if frame.code in wanted:
                        return frame.payload
                    if frame.code is not None:
                        logger.debug(f"Discarding frame 0x{frame.code:02X} while waiting for push")
        raise WaitTimeoutError(f"timeout ({timeout_s}s) waiting for push {_codes(wanted)}")

    def reconnect(self) -> None:
        """Close and reopen the serial port.

        Collector session state is left alone; callers reset their own state.
        """
        with self._lock:
            try:
                self._port.close()
            except OSError as e:
                logger.debug(f"Ignoring close error: {e}")
            self._port = self._open_port()
        logger.info("Serial port reopened")

    def drain(self) -> int:
        """Discard buffered input until the port goes quiet. Returns bytes drained."""
        drained = 0
        with self._lock:
            try:
                with self._read_timeout(DRAIN_READ_TIMEOUT_S):
                    while drained < MAX_DRAIN_BYTES:
                        chunk = self._port.read(HEADER_SIZE + MAX_FRAME_SIZE)
                        if not chunk:
                            break
                        drained += len(chunk)
            except OSError as e:
                logger.debug(f"Drain failed: {e}")
        if drained > 0:
            logger.debug(f"Drained {drained} stale bytes from input buffer")
        return drained

    def close(self) -> None:
        with self._lock:
            try:
                self._port.close()
            except OSError as e:
                logger.debug(f"Ignoring close error: {e}")

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def app_start(self) -> SelfInfo:
        return encoding.parse_self_info(self.send_command(encoding.build_app_start_cmd()))

    def get_version(self) -> str:
        return encoding.parse_version(self.send_command(encoding.build_get_version_cmd()))

    def get_stats_core(self) -> StatsCore:
        data = self.send_command(encoding.build_get_stats_cmd(StatsType.CORE))
        return encoding.parse_stats_core(data)

    def get_stats_radio(self) -> StatsRadio:
        data = self.send_command(encoding.build_get_stats_cmd(StatsType.RADIO))
        return encoding.parse_stats_radio(data)

    def get_stats_packets(self) -> StatsPackets:
        data = self.send_command(encoding.build_get_stats_cmd(StatsType.PACKETS))
        return encoding.parse_stats_packets(data)

    def get_contacts(self) -> list[Contact]:
        """Fetch the full contact list (contacts-start, records, end-of-contacts)."""
        with self._lock:
            self._write(encoding.build_get_contacts_cmd())
            count = encoding.parse_contacts_start(self._read_response())
            contacts: list[Contact] = []
            while True:
                data = self._read_response()
                if data[:1] == bytes([ResponseCode.END_OF_CONTACTS]):
                    break
                contacts.append(encoding.parse_contact(data))
        if len(contacts) != count:
            logger.warning(f"Contacts start announced {count} contacts, received {len(contacts)}")
        return contacts

    def send_login(self, pubkey: bytes, password: str) -> SentAck:
        return encoding.parse_sent(self.send_command(encoding.build_send_login_cmd(pubkey, password)))

    def send_status_request(self, pubkey: bytes) -> SentAck:
        return encoding.parse_sent(self.send_command(encoding.build_send_status_req_cmd(pubkey)))

    def send_owner_info_request(self, pubkey: bytes) -> SentAck:
        return encoding.parse_sent(self.send_command(encoding.build_send_owner_info_req_cmd(pubkey)))

    def send_telemetry_request(self, pubkey: bytes) -> SentAck:
        return encoding.parse_sent(self.send_command(encoding.build_send_telemetry_req_cmd(pubkey)))

    def set_radio_params(self, region: RadioRegion) -> None:
        cmd = encoding.build_set_radio_params_cmd(region.freq_khz, region.bw_hz, region.sf, region.cr)
        encoding.parse_ok(self.send_command(cmd))

    def set_radio_tx_power(self, power_dbm: int) -> None:
        encoding.parse_ok(self.send_command(encoding.build_set_radio_tx_power_cmd(power_dbm)))

    def reboot(self) -> None:
        """Ask the radio to reboot. The device resets without replying."""
        with self._lock:
            self._write(encoding.build_reboot_cmd())


def _codes(codes: Collection[int]) -> str:
    return ",".join(f"0x{c:02X}" for c in sorted(codes))
