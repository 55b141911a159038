"""Command encoding and response/push decoding for the companion radio.

Pure functions, no I/O. Builders produce the exact command payload (without
the frame envelope). Parsers check the leading opcode, then the minimum
length, then decode fixed-offset little-endian fields.

Two stats layouts exist and are decoded by separate offset tables:
- the get-stats response: [code][stats type][fixed body per type]
- the remote status push: [code][reserved][6-byte sender prefix][body]
"""

from meshcore.errors import ProtocolError, ProtocolErrorKind
from meshcore.frame import BYTE_ORDER, uint32_to_bytes
from meshcore.model import (
    Contact,
    LogRxData,
    OwnerInfo,
    SelfInfo,
    SentAck,
    StatsCore,
    StatsPackets,
    StatsRadio,
    TelemetryResponse,
)
from meshcore.protocol import (
    APP_START_CLIENT_ID,
    APP_START_SIZE,
    APP_START_VERSION,
    PUBKEY_SIZE,
    REBOOT_GUARD,
    REQ_TYPE_GET_OWNER_INFO,
    CommandCode,
    PushCode,
    ResponseCode,
    StatsType,
)

# SNR and similar ratios are sent as signed integers in quarter-dB units
SNR_SCALE = 4.0
# Coordinates are signed 32-bit micro-degrees
COORD_SCALE = 1e6

STATS_CORE_SIZE = 11
STATS_RADIO_SIZE = 14
STATS_PACKETS_SIZE = 26

SELF_INFO_HEADER_SIZE = 58
CONTACT_SIZE = 148
CONTACT_NAME_OFFSET = 1 + PUBKEY_SIZE + 3 + 64  # code + key + type/flags/path_len + path
CONTACT_NAME_SIZE = 32

STATUS_RESPONSE_MIN_SIZE = 48
LOG_RX_DATA_MIN_SIZE = 5  # code + snr + rssi + packet header + path length


# -----------------------------------------------------------------------------
# Field helpers
# -----------------------------------------------------------------------------


def _u16(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], BYTE_ORDER, signed=False)


def _i16(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], BYTE_ORDER, signed=True)


def _u32(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 4], BYTE_ORDER, signed=False)


def _i32(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 4], BYTE_ORDER, signed=True)


def _i8(data: bytes, offset: int) -> int:
    value = data[offset]
    return value - 0x100 if value >= 0x80 else value


def _coord(data: bytes, offset: int) -> float:
    return _i32(data, offset) / COORD_SCALE


def trim_null(data: bytes) -> str:
    """Decode a fixed-width string field, stopping at the first NUL."""
    end = data.find(b"\x00")
    if end >= 0:
        data = data[:end]
    return data.decode("utf-8", errors="replace")


def _expect(data: bytes, want: int, min_size: int, what: str) -> None:
    """Check opcode then minimum length, raising ProtocolError on mismatch."""
    if not data:
        raise ProtocolError(ProtocolErrorKind.TRUNCATED, f"empty {what}", got=0, want=min_size)
    if data[0] != want:
        raise ProtocolError(
            ProtocolErrorKind.UNEXPECTED_OPCODE,
            f"{what}: unexpected response code 0x{data[0]:02X}, want 0x{want:02X}",
            got=data[0],
            want=want,
        )
    if len(data) < min_size:
        raise ProtocolError(
            ProtocolErrorKind.TRUNCATED,
            f"insufficient data for {what}: got {len(data)} bytes, need {min_size}",
            got=len(data),
            want=min_size,
        )


def _check_pubkey(pubkey: bytes) -> None:
    if len(pubkey) != PUBKEY_SIZE:
        raise ValueError(f"pubkey must be {PUBKEY_SIZE} bytes, got {len(pubkey)}")


# -----------------------------------------------------------------------------
# Command builders
# -----------------------------------------------------------------------------


def build_app_start_cmd() -> bytes:
    """app-start: [code][app version][client id], zero-padded to 11 bytes."""
    cmd = bytes([CommandCode.APP_START, APP_START_VERSION]) + APP_START_CLIENT_ID
    return cmd.ljust(APP_START_SIZE, b"\x00")


def build_get_contacts_cmd() -> bytes:
    return bytes([CommandCode.GET_CONTACTS])


def build_get_version_cmd() -> bytes:
    return bytes([CommandCode.GET_VERSION])


def build_get_stats_cmd(stats_type: StatsType) -> bytes:
    return bytes([CommandCode.GET_STATS, stats_type])


def build_set_radio_params_cmd(freq_khz: int, bw_hz: int, sf: int, cr: int) -> bytes:
    """set-radio-params: [code][freq kHz u32][bw Hz u32][sf][cr]."""
    return (
        bytes([CommandCode.SET_RADIO_PARAMS])
        + uint32_to_bytes(freq_khz)
        + uint32_to_bytes(bw_hz)
        + bytes([sf, cr])
    )


def build_set_radio_tx_power_cmd(power_dbm: int) -> bytes:
    return bytes([CommandCode.SET_RADIO_TX_POWER, power_dbm])


def build_reboot_cmd() -> bytes:
    """reboot: [code]["reboot"]; firmware ignores the opcode without the guard word."""
    return bytes([CommandCode.REBOOT]) + REBOOT_GUARD


def build_send_login_cmd(pubkey: bytes, password: str) -> bytes:
    """send-login: [code][32-byte pubkey][raw password bytes, no terminator]."""
    _check_pubkey(pubkey)
    return bytes([CommandCode.SEND_LOGIN]) + pubkey + password.encode("utf-8")


def build_send_status_req_cmd(pubkey: bytes) -> bytes:
    _check_pubkey(pubkey)
    return bytes([CommandCode.SEND_STATUS_REQ]) + pubkey


def build_send_telemetry_req_cmd(pubkey: bytes) -> bytes:
    """send-telemetry-request: [code][3 reserved][32-byte pubkey]."""
    _check_pubkey(pubkey)
    return bytes([CommandCode.SEND_TELEMETRY_REQ]) + b"\x00" * 3 + pubkey


def build_send_owner_info_req_cmd(pubkey: bytes) -> bytes:
    """send-binary-request for owner info: [code][pubkey][4 reserved][sub-type]."""
    _check_pubkey(pubkey)
    return (
        bytes([CommandCode.SEND_BINARY_REQ])
        + pubkey
        + b"\x00" * 4
        + bytes([REQ_TYPE_GET_OWNER_INFO])
    )


# -----------------------------------------------------------------------------
# Response parsers
# -----------------------------------------------------------------------------


def parse_ok(data: bytes) -> None:
    """Accept an OK response; an ERR response raises REJECTED with its code."""
    if data and data[0] == ResponseCode.ERR:
        code = data[1] if len(data) > 1 else None
        raise ProtocolError(
            ProtocolErrorKind.REJECTED, f"device rejected command (error code {code})", got=code
        )
    _expect(data, ResponseCode.OK, 1, "ok response")


def parse_version(data: bytes) -> str:
    _expect(data, ResponseCode.VERSION, 1, "version")
    if len(data) == 1:
        return "unknown"
    return trim_null(data[1:])


def parse_self_info(data: bytes) -> SelfInfo:
    """Parse self-info.

    [0]=code, [1]=adv type, [2]=tx power, [3]=max tx power, [4:36]=pubkey,
    [36:40]=lat, [40:44]=lon, [44:58]=flags and radio params, [58:]=name
    """
    _expect(data, ResponseCode.SELF_INFO, SELF_INFO_HEADER_SIZE, "self info")
    return SelfInfo(
        pubkey=bytes(data[4 : 4 + PUBKEY_SIZE]),
        name=trim_null(data[SELF_INFO_HEADER_SIZE:]),
        lat=_coord(data, 36),
        lon=_coord(data, 40),
        tx_power=data[2],
        max_tx_power=data[3],
    )


def parse_contacts_start(data: bytes) -> int:
    """Return the contact count announced by contacts-start."""
    _expect(data, ResponseCode.CONTACTS_START, 5, "contacts start")
    return _u32(data, 1)


def parse_contact(data: bytes) -> Contact:
    """Parse a contact record.

    [0]=code, [1:33]=pubkey, [33]=type, [34]=flags, [35]=out path len,
    [36:100]=out path, [100:132]=name, [132:136]=last advert,
    [136:140]=lat, [140:144]=lon, [144:148]=last modified
    """
    _expect(data, ResponseCode.CONTACT, CONTACT_SIZE, "contact")
    return Contact(
        pubkey=bytes(data[1 : 1 + PUBKEY_SIZE]),
        type=data[33],
        flags=data[34],
        out_path_len=_i8(data, 35),
        name=trim_null(data[CONTACT_NAME_OFFSET : CONTACT_NAME_OFFSET + CONTACT_NAME_SIZE]),
        lat=_coord(data, 136),
        lon=_coord(data, 140),
    )


def parse_sent(data: bytes) -> SentAck:
    """[0]=code, [1]=flood flag, [2:6]=tag, [6:10]=suggested timeout (ms)."""
    _expect(data, ResponseCode.SENT, 10, "sent response")
    return SentAck(is_flood=data[1] == 1, tag=_u32(data, 2), timeout_ms=_u32(data, 6))


def parse_stats_core(data: bytes) -> StatsCore:
    _expect_stats(data, StatsType.CORE, STATS_CORE_SIZE)
    return StatsCore(
        battery_mv=_u16(data, 2),
        uptime_secs=_u32(data, 4),
        errors=_u16(data, 8),
        queue_len=data[10],
    )


def parse_stats_radio(data: bytes) -> StatsRadio:
    _expect_stats(data, StatsType.RADIO, STATS_RADIO_SIZE)
    return StatsRadio(
        noise_floor=_i16(data, 2),
        last_rssi=_i8(data, 4),
        last_snr=_i8(data, 5) / SNR_SCALE,
        tx_air_secs=_u32(data, 6),
        rx_air_secs=_u32(data, 10),
    )


def parse_stats_packets(data: bytes) -> StatsPackets:
    _expect_stats(data, StatsType.PACKETS, STATS_PACKETS_SIZE)
    return StatsPackets(
        recv=_u32(data, 2),
        sent=_u32(data, 6),
        flood_tx=_u32(data, 10),
        direct_tx=_u32(data, 14),
        flood_rx=_u32(data, 18),
        direct_rx=_u32(data, 22),
    )


def _expect_stats(data: bytes, stats_type: StatsType, size: int) -> None:
    what = f"{stats_type.name.lower()} stats"
    _expect(data, ResponseCode.STATS, 2, what)
    if data[1] != stats_type:
        raise ProtocolError(
            ProtocolErrorKind.UNEXPECTED_OPCODE,
            f"{what}: unexpected stats type {data[1]}, want {int(stats_type)}",
            got=data[1],
            want=stats_type,
        )
    _expect(data, ResponseCode.STATS, size, what)


# -----------------------------------------------------------------------------
# Push parsers
# -----------------------------------------------------------------------------


def parse_login_success(data: bytes) -> bytes:
    """Return the 6-byte pubkey prefix of the node we logged into."""
    _expect(data, PushCode.LOGIN_SUCCESS, 8, "login success")
    return bytes(data[2:8])


def parse_status_response(data: bytes) -> tuple[StatsCore, StatsRadio, StatsPackets]:
    """Parse the combined status push from a repeater.

    Offsets (body starts at 8, after code, reserved byte and sender prefix):
      [8:10] battery mV      [10] queue length      [12] last RSSI i8
      [14] last SNR i8 x4    [16:20] packets recv   [20:24] packets sent
      [24:28] TX airtime     [28:32] uptime         [32:36] flood TX
      [36:40] direct TX      [40:44] flood RX       [44:48] direct RX
      [48:50] error events   [56:60] RX airtime
    The trailing fields are optional; older firmware stops at 48 bytes. The
    push carries no noise floor.
    """
    _expect(data, PushCode.STATUS_RESPONSE, STATUS_RESPONSE_MIN_SIZE, "status response")
    core = StatsCore(
        battery_mv=_u16(data, 8),
        uptime_secs=_u32(data, 28),
        errors=_u16(data, 48) if len(data) >= 50 else 0,
        queue_len=data[10],
    )
    radio = StatsRadio(
        noise_floor=None,
        last_rssi=_i8(data, 12),
        last_snr=_i8(data, 14) / SNR_SCALE,
        tx_air_secs=_u32(data, 24),
        rx_air_secs=_u32(data, 56) if len(data) >= 60 else 0,
    )
    packets = StatsPackets(
        recv=_u32(data, 16),
        sent=_u32(data, 20),
        flood_tx=_u32(data, 32),
        direct_tx=_u32(data, 36),
        flood_rx=_u32(data, 40),
        direct_rx=_u32(data, 44),
    )
    return core, radio, packets


def parse_owner_info(data: bytes) -> OwnerInfo:
    """Parse an owner-info binary response.

    [0]=code, [1:7]=sender prefix, [7]=reserved, [8:12]=timestamp,
    [12:]="version\\nnode name\\nowner info"
    """
    _expect(data, PushCode.BINARY_RESPONSE, 13, "owner info")
    parts = trim_null(data[12:]).split("\n", 2)
    parts += [""] * (3 - len(parts))
    return OwnerInfo(firmware_version=parts[0], node_name=parts[1], owner_info=parts[2])


def parse_telemetry_response(data: bytes) -> TelemetryResponse:
    """[0]=code, [1]=reserved, [2:8]=sender prefix, [8:]=Cayenne LPP data."""
    _expect(data, PushCode.TELEMETRY_RESPONSE, 8, "telemetry response")
    return TelemetryResponse(pubkey_prefix=bytes(data[2:8]), lpp_data=bytes(data[8:]))


def parse_log_rx_data(data: bytes) -> LogRxData:
    """Parse an overheard mesh packet.

    [0]=code, [1]=SNR x4, [2]=RSSI, then the raw packet:
    [3]=packet header, [4]=path length L, [5:5+L]=path, rest=encrypted payload.
    The first path byte is the truncated hash of the last forwarder.
    """
    _expect(data, PushCode.LOG_RX_DATA, LOG_RX_DATA_MIN_SIZE, "log rx data")
    path_len = data[4]
    if path_len and len(data) == LOG_RX_DATA_MIN_SIZE:
        raise ProtocolError(
            ProtocolErrorKind.TRUNCATED,
            f"log rx data declares {path_len} path bytes but carries none",
            got=len(data),
            want=LOG_RX_DATA_MIN_SIZE + 1,
        )
    return LogRxData(
        snr=_i8(data, 1) / SNR_SCALE,
        rssi=_i8(data, 2),
        header=data[3],
        path=bytes(data[5 : 5 + path_len]),
        payload_len=len(data) - LOG_RX_DATA_MIN_SIZE - path_len,
    )
