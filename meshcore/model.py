"""Typed records decoded from the companion radio protocol.

Contains:
- Contact, SelfInfo: identities
- StatsCore, StatsRadio, StatsPackets: telemetry snapshots
- SentAck, OwnerInfo, TelemetryResponse, LogRxData: command results and pushes
- RadioRegion and the REGIONS preset table
"""

from dataclasses import dataclass, field


@dataclass
class Contact:
    """A contact record from the radio's contact list.

    Identity is the pubkey; names are operator-assigned and may repeat.
    """

    pubkey: bytes  # 32 bytes
    type: int
    flags: int
    name: str
    out_path_len: int  # signed, -1 means no known path
    lat: float
    lon: float

    @property
    def prefix(self) -> str:
        """2-byte pubkey prefix as uppercase hex."""
        return self.pubkey[:2].hex().upper()

    @property
    def path_hash(self) -> int:
        """1-byte truncated hash used in mesh packet paths."""
        return self.pubkey[0]


@dataclass
class SelfInfo:
    """The companion radio's own identity."""

    pubkey: bytes
    name: str
    lat: float
    lon: float
    tx_power: int
    max_tx_power: int


@dataclass
class StatsCore:
    battery_mv: int
    uptime_secs: int
    errors: int
    queue_len: int


@dataclass
class StatsRadio:
    noise_floor: int | None  # not carried by the repeater status push
    last_rssi: int
    last_snr: float  # dB, already divided by 4
    tx_air_secs: int
    rx_air_secs: int


@dataclass
class StatsPackets:
    recv: int
    sent: int
    flood_tx: int
    direct_tx: int
    flood_rx: int
    direct_rx: int


@dataclass
class SentAck:
    """Acknowledgement that a send-* command was queued on the mesh."""

    is_flood: bool
    tag: int
    timeout_ms: int


@dataclass
class OwnerInfo:
    firmware_version: str = ""
    node_name: str = ""
    owner_info: str = ""


@dataclass
class TelemetryResponse:
    """Telemetry push; the Cayenne LPP body is surfaced undecoded."""

    pubkey_prefix: bytes
    lpp_data: bytes


@dataclass
class LogRxData:
    """An overheard mesh packet reported by the radio."""

    snr: float
    rssi: int
    header: int
    path: bytes = field(default=b"")
    payload_len: int = 0


@dataclass(frozen=True)
class RadioRegion:
    name: str
    freq_khz: int
    bw_hz: int
    sf: int
    cr: int

    def describe(self) -> str:
        return (
            f"{self.freq_khz / 1000.0:.3f} MHz, {self.bw_hz // 1000} kHz BW, "
            f"SF{self.sf}, CR{self.cr}"
        )


REGIONS: dict[str, RadioRegion] = {
    "US": RadioRegion("US", freq_khz=910525, bw_hz=62500, sf=7, cr=5),
    "EU": RadioRegion("EU", freq_khz=869525, bw_hz=250000, sf=10, cr=5),
    "AU": RadioRegion("AU", freq_khz=915000, bw_hz=250000, sf=10, cr=5),
    "NZ": RadioRegion("NZ", freq_khz=915000, bw_hz=250000, sf=10, cr=5),
}
