"""Unit tests for the radio transport session."""

import errno
import time

import pytest
import serial

import payloads
from fakes import MockSerialPort, PortOpener, ScriptedSerialPort
from meshcore.errors import (
    ProtocolError,
    ProtocolErrorKind,
    TransportError,
    TransportErrorKind,
    WaitTimeoutError,
)
from meshcore.model import REGIONS
from meshcore.protocol import DEFAULT_READ_TIMEOUT_S, CommandCode, PushCode, ResponseCode
from meshcore.radio import MAX_DRAIN_BYTES, Radio

PUBKEY = payloads.make_pubkey(0xA1, 0xB2)


def _radio(port: MockSerialPort, pushes: list[bytes] | None = None) -> Radio:
    on_push = pushes.append if pushes is not None else None
    return Radio(PortOpener(port), on_push=on_push)


@pytest.mark.unit
class TestSendCommand:
    def test_writes_framed_command(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.stats_core_payload(3700, 12345, 0, 2))
        radio = _radio(mock_port)
        radio.get_stats_core()
        assert bytes(mock_port.written) == b"<\x02\x00\x38\x00"

    def test_pushes_before_response_dispatched_in_order(self, mock_port: MockSerialPort) -> None:
        pushes: list[bytes] = []
        first = payloads.log_rx_payload(1, -90)
        second = payloads.log_rx_payload(2, -91)
        third = payloads.log_rx_payload(3, -92)
        for p in (first, second, third):
            mock_port.inject_frame(p)
        mock_port.inject_frame(payloads.stats_core_payload(3700, 12345, 0, 2))

        radio = _radio(mock_port, pushes)
        core = radio.get_stats_core()

        assert core.battery_mv == 3700
        assert pushes == [first, second, third]

    def test_pushes_without_handler_are_dropped(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.log_rx_payload(1, -90))
        mock_port.inject_frame(payloads.version_payload("v1.9.0"))
        assert _radio(mock_port).get_version() == "v1.9.0"

    def test_no_response_is_timeout(self, mock_port: MockSerialPort) -> None:
        with pytest.raises(TransportError) as exc_info:
            _radio(mock_port).get_stats_radio()
        assert exc_info.value.kind is TransportErrorKind.TIMEOUT

    def test_write_failure_is_classified(self, mock_port: MockSerialPort) -> None:
        mock_port.write_error = serial.SerialException(errno.ENXIO, "gone")
        with pytest.raises(TransportError) as exc_info:
            _radio(mock_port).get_stats_core()
        assert exc_info.value.kind is TransportErrorKind.DEVICE_GONE

    def test_write_timeout(self, mock_port: MockSerialPort) -> None:
        mock_port.write_error = serial.SerialTimeoutException("Write timeout")
        with pytest.raises(TransportError) as exc_info:
            _radio(mock_port).get_stats_core()
        assert exc_info.value.kind is TransportErrorKind.TIMEOUT

    def test_bad_header(self, mock_port: MockSerialPort) -> None:
        mock_port.inject(b"Z\x01\x00\x00")
        with pytest.raises(ProtocolError) as exc_info:
            _radio(mock_port).get_stats_core()
        assert exc_info.value.kind is ProtocolErrorKind.BAD_HEADER

    def test_unexpected_opcode(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.OK)
        with pytest.raises(ProtocolError) as exc_info:
            _radio(mock_port).get_stats_core()
        assert exc_info.value.kind is ProtocolErrorKind.UNEXPECTED_OPCODE


@pytest.mark.unit
class TestWaitForPushCode:
    def test_returns_first_match(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.login_success_payload())
        mock_port.inject_frame(payloads.login_fail_payload())
        data = _radio(mock_port).wait_for_push_code(
            (PushCode.LOGIN_SUCCESS, PushCode.LOGIN_FAIL), timeout_s=1.0
        )
        assert data[0] == PushCode.LOGIN_SUCCESS

    def test_discards_non_matching(self, mock_port: MockSerialPort) -> None:
        pushes: list[bytes] = []
        mock_port.inject_frame(payloads.log_rx_payload(1, -90))
        mock_port.inject_frame(payloads.sent_payload())
        mock_port.inject_frame(payloads.status_payload())
        data = _radio(mock_port, pushes).wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=1.0)
        assert data[0] == PushCode.STATUS_RESPONSE
        assert pushes == []

    def test_raises_when_nothing_matches(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.log_rx_payload(1, -90))
        with pytest.raises(WaitTimeoutError):
            _radio(mock_port).wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=1.0)

    def test_expired_deadline(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.status_payload())
        with pytest.raises(WaitTimeoutError):
            _radio(mock_port).wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=0)

    def test_read_timeout_narrowed_then_restored(self, mock_port: MockSerialPort) -> None:
        seen: list[float | None] = []
        original_read = mock_port.read

        def spy(size: int = 1, /) -> bytes:
            seen.append(mock_port.timeout)
            return original_read(size)

        mock_port.read = spy  # type: ignore[method-assign]
        mock_port.inject_frame(payloads.status_payload())
        radio = _radio(mock_port)
        radio.wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=30.0)

        assert seen
        assert all(t is not None and 0 < t <= 30.0 for t in seen)
        assert mock_port.timeout == DEFAULT_READ_TIMEOUT_S

    def test_timeout_restored_after_failure(self, mock_port: MockSerialPort) -> None:
        radio = _radio(mock_port)
        with pytest.raises(WaitTimeoutError):
            radio.wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=5.0)
        assert mock_port.timeout == DEFAULT_READ_TIMEOUT_S

    def test_device_gone_propagates(self, mock_port: MockSerialPort) -> None:
        mock_port.read_error = serial.SerialException(errno.EIO, "Input/output error")
        with pytest.raises(TransportError) as exc_info:
            _radio(mock_port).wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=1.0)
        assert exc_info.value.kind is TransportErrorKind.DEVICE_GONE

    def test_returns_promptly(self, mock_port: MockSerialPort) -> None:
        mock_port.inject_frame(payloads.status_payload())
        start = time.monotonic()
        _radio(mock_port).wait_for_push_code((PushCode.STATUS_RESPONSE,), timeout_s=30.0)
        assert time.monotonic() - start < 1.0


@pytest.mark.unit
class TestConnectionManagement:
    def test_open_failure_is_transport_error(self) -> None:
        with pytest.raises(TransportError) as exc_info:
            Radio(PortOpener(serial.SerialException(errno.ENOENT, "could not open port")))
        assert exc_info.value.kind is TransportErrorKind.IO

    def test_reconnect_reopens_port(self) -> None:
        old, new = MockSerialPort(), MockSerialPort()
        opener = PortOpener(old, new)
        radio = Radio(opener)
        radio.reconnect()
        assert old.closed
        assert opener.opens == 2
        assert new.timeout == DEFAULT_READ_TIMEOUT_S

        new.inject_frame(payloads.version_payload("v2"))
        assert radio.get_version() == "v2"

    def test_reconnect_ignores_close_error(self) -> None:
        class BrokenClose(MockSerialPort):
            def close(self) -> None:
                raise OSError(errno.EIO, "close failed")

        radio = Radio(PortOpener(BrokenClose(), MockSerialPort()))
        radio.reconnect()

    def test_reconnect_failure_raises(self) -> None:
        radio = Radio(PortOpener(MockSerialPort(), OSError(errno.ENOENT, "No such file")))
        with pytest.raises(TransportError):
            radio.reconnect()

    def test_drain_discards_stale_bytes(self, mock_port: MockSerialPort) -> None:
        mock_port.inject(b"\x00garbage" * 10)
        radio = _radio(mock_port)
        assert radio.drain() == 80
        assert mock_port.in_waiting == 0
        assert mock_port.timeout == DEFAULT_READ_TIMEOUT_S

    def test_drain_is_bounded(self, mock_port: MockSerialPort) -> None:
        mock_port.inject(b"\xff" * (MAX_DRAIN_BYTES + 2048))
        drained = _radio(mock_port).drain()
        assert MAX_DRAIN_BYTES <= drained < MAX_DRAIN_BYTES + 1024

    def test_drain_ignores_errors(self, mock_port: MockSerialPort) -> None:
        mock_port.read_error = OSError(errno.EIO, "gone")
        assert _radio(mock_port).drain() == 0


@pytest.mark.unit
class TestCommands:
    def test_get_contacts(self, scripted_port: ScriptedSerialPort) -> None:
        pushes: list[bytes] = []
        scripted_port.reply(
            CommandCode.GET_CONTACTS,
            payloads.contacts_start_payload(2),
            payloads.contact_payload(payloads.make_pubkey(0x01), "Alpha"),
            payloads.log_rx_payload(0, -70),
            payloads.contact_payload(payloads.make_pubkey(0x02), "Bravo"),
            payloads.END_OF_CONTACTS,
        )
        contacts = _radio(scripted_port, pushes).get_contacts()
        assert [c.name for c in contacts] == ["Alpha", "Bravo"]
        assert len(pushes) == 1

    def test_get_contacts_empty(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(
            CommandCode.GET_CONTACTS, payloads.contacts_start_payload(0), payloads.END_OF_CONTACTS
        )
        assert _radio(scripted_port).get_contacts() == []

    def test_app_start(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.APP_START, payloads.self_info_payload(PUBKEY, "Base"))
        info = _radio(scripted_port).app_start()
        assert info.name == "Base"
        assert scripted_port.sent_payloads()[0][:7] == b"\x01\x03mccli"

    def test_send_login(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.SEND_LOGIN, payloads.sent_payload(tag=7))
        ack = _radio(scripted_port).send_login(PUBKEY, "pw")
        assert ack.tag == 7
        assert scripted_port.sent_payloads()[0] == bytes([CommandCode.SEND_LOGIN]) + PUBKEY + b"pw"

    def test_status_and_telemetry_requests(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.SEND_STATUS_REQ, payloads.sent_payload())
        scripted_port.reply(CommandCode.SEND_TELEMETRY_REQ, payloads.sent_payload())
        scripted_port.reply(CommandCode.SEND_BINARY_REQ, payloads.sent_payload())
        radio = _radio(scripted_port)
        radio.send_status_request(PUBKEY)
        radio.send_telemetry_request(PUBKEY)
        radio.send_owner_info_request(PUBKEY)
        assert scripted_port.sent_codes() == [27, 39, 50]

    def test_set_radio_params(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.SET_RADIO_PARAMS, payloads.OK)
        scripted_port.reply(CommandCode.SET_RADIO_TX_POWER, payloads.OK)
        radio = _radio(scripted_port)
        radio.set_radio_params(REGIONS["US"])
        radio.set_radio_tx_power(20)
        assert scripted_port.sent_codes() == [11, 12]

    def test_set_radio_params_rejected(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.SET_RADIO_PARAMS, payloads.err_payload(2))
        with pytest.raises(ProtocolError) as exc_info:
            _radio(scripted_port).set_radio_params(REGIONS["EU"])
        assert exc_info.value.kind is ProtocolErrorKind.REJECTED

    def test_reboot_does_not_wait(self, mock_port: MockSerialPort) -> None:
        radio = _radio(mock_port)
        radio.reboot()
        assert mock_port.sent_payloads() == [b"\x13reboot"]
        assert mock_port.reads == 0

    def test_get_version(self, scripted_port: ScriptedSerialPort) -> None:
        scripted_port.reply(CommandCode.GET_VERSION, bytes([ResponseCode.VERSION]) + b"v1.10.0")
        assert _radio(scripted_port).get_version() == "v1.10.0"
