"""Metrics sink for meshcore-stats.

Contains:
- Metric name constants and the METRICS catalogue
- MetricsSink Protocol: the narrow observe() capability collectors depend on
- PrometheusSink: prometheus_client implementation with its own registry
- serve_metrics: start the pull-based /metrics endpoint

observe() has set semantics for gauges and add semantics for counters.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

NODE = "node"
SENDER = "sender"

BATTERY_MILLIVOLTS = "meshcore_battery_millivolts"
UPTIME_SECONDS = "meshcore_uptime_seconds"
ERROR_FLAGS = "meshcore_error_flags"
QUEUE_LENGTH = "meshcore_queue_length"
NOISE_FLOOR_DBM = "meshcore_noise_floor_dbm"
LAST_RSSI = "meshcore_last_rssi_dbm"
LAST_SNR = "meshcore_last_snr_db"
TX_AIRTIME_SECONDS = "meshcore_tx_airtime_seconds_total"
RX_AIRTIME_SECONDS = "meshcore_rx_airtime_seconds_total"
PACKETS_RECEIVED = "meshcore_packets_received_total"
PACKETS_SENT = "meshcore_packets_sent_total"
PACKETS_FLOOD_TX = "meshcore_packets_flood_tx_total"
PACKETS_DIRECT_TX = "meshcore_packets_direct_tx_total"
PACKETS_FLOOD_RX = "meshcore_packets_flood_rx_total"
PACKETS_DIRECT_RX = "meshcore_packets_direct_rx_total"
SCRAPE_ERRORS = "meshcore_scrape_errors"
LOGIN_STATUS = "meshcore_login_status"
MESH_PACKETS_OBSERVED = "meshcore_mesh_packets_observed"
MESH_PACKET_RSSI = "meshcore_mesh_packet_rssi_dbm"
MESH_PACKET_SNR = "meshcore_mesh_packet_snr_db"
MESH_PACKET_BYTES = "meshcore_mesh_packet_bytes"
NODE_LATITUDE = "meshcore_node_latitude"
NODE_LONGITUDE = "meshcore_node_longitude"
RADIO_REBOOTS = "meshcore_radio_reboots"
SERIAL_RECONNECTS = "meshcore_serial_reconnects"
REPEATER_LOGINS = "meshcore_repeater_logins"


class MetricKind(Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricDef:
    name: str
    help: str
    kind: MetricKind = MetricKind.GAUGE
    labels: tuple[str, ...] = (NODE,)


# Device counters are republished as gauges: the device owns the running
# total and it resets on reboot.
# prometheus_client appends "_total" to Counter names on exposition.
METRICS: tuple[MetricDef, ...] = (
    MetricDef(BATTERY_MILLIVOLTS, "Battery voltage in millivolts"),
    MetricDef(UPTIME_SECONDS, "Device uptime in seconds"),
    MetricDef(ERROR_FLAGS, "Error flags bitmask"),
    MetricDef(QUEUE_LENGTH, "Outbound packet queue length"),
    MetricDef(NOISE_FLOOR_DBM, "Radio noise floor in dBm"),
    MetricDef(LAST_RSSI, "Last received signal strength in dBm"),
    MetricDef(LAST_SNR, "Last signal-to-noise ratio in dB"),
    MetricDef(TX_AIRTIME_SECONDS, "Cumulative transmit airtime in seconds"),
    MetricDef(RX_AIRTIME_SECONDS, "Cumulative receive airtime in seconds"),
    MetricDef(PACKETS_RECEIVED, "Total packets received"),
    MetricDef(PACKETS_SENT, "Total packets sent"),
    MetricDef(PACKETS_FLOOD_TX, "Packets sent via flood routing"),
    MetricDef(PACKETS_DIRECT_TX, "Packets sent via direct routing"),
    MetricDef(PACKETS_FLOOD_RX, "Packets received via flood routing"),
    MetricDef(PACKETS_DIRECT_RX, "Packets received via direct routing"),
    MetricDef(SCRAPE_ERRORS, "Total number of scrape errors", MetricKind.COUNTER),
    MetricDef(LOGIN_STATUS, "Login status (1=logged in, 0=not logged in)"),
    MetricDef(
        MESH_PACKETS_OBSERVED,
        "Mesh packets observed by the radio",
        MetricKind.COUNTER,
        (NODE, SENDER),
    ),
    MetricDef(MESH_PACKET_RSSI, "Last RSSI of packets from a mesh sender", labels=(NODE, SENDER)),
    MetricDef(MESH_PACKET_SNR, "Last SNR of packets from a mesh sender", labels=(NODE, SENDER)),
    MetricDef(
        MESH_PACKET_BYTES,
        "Total bytes observed from mesh senders",
        MetricKind.COUNTER,
        (NODE, SENDER),
    ),
    MetricDef(NODE_LATITUDE, "Node latitude in degrees"),
    MetricDef(NODE_LONGITUDE, "Node longitude in degrees"),
    MetricDef(RADIO_REBOOTS, "Total companion radio reboot commands sent", MetricKind.COUNTER),
    MetricDef(SERIAL_RECONNECTS, "Total serial port reconnections", MetricKind.COUNTER),
    MetricDef(REPEATER_LOGINS, "Total successful repeater logins", MetricKind.COUNTER),
)


class MetricsSink(Protocol):
    """Anything that accepts named numeric observations."""

    def observe(self, name: str, labels: dict[str, str], value: float) -> None: ...


class PrometheusSink:
    """MetricsSink backed by a prometheus_client registry."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: dict[str, Gauge | Counter] = {}
        for d in METRICS:
            cls = Counter if d.kind is MetricKind.COUNTER else Gauge
            self._metrics[d.name] = cls(d.name, d.help, list(d.labels), registry=self.registry)

    def observe(self, name: str, labels: dict[str, str], value: float) -> None:
        metric = self._metrics.get(name)
        if metric is None:
            raise KeyError(f"Unknown metric: {name}")
        child = metric.labels(**labels)
        if isinstance(child, Counter):
            child.inc(value)
        else:
            child.set(value)


def serve_metrics(sink: PrometheusSink, addr: str, port: int) -> None:
    """Serve the sink's registry at http://addr:port/metrics in a daemon thread."""
    start_http_server(port, addr=addr, registry=sink.registry)
    logger.info(f"Serving metrics on {addr or '0.0.0.0'}:{port}/metrics")
