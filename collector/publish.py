"""Translate decoded stats records into metric observations."""

from exporter import metrics
from exporter.metrics import MetricsSink
from meshcore.model import StatsCore, StatsPackets, StatsRadio


def publish_core(sink: MetricsSink, node: str, core: StatsCore) -> None:
    labels = {metrics.NODE: node}
    sink.observe(metrics.BATTERY_MILLIVOLTS, labels, core.battery_mv)
    sink.observe(metrics.UPTIME_SECONDS, labels, core.uptime_secs)
    sink.observe(metrics.ERROR_FLAGS, labels, core.errors)
    sink.observe(metrics.QUEUE_LENGTH, labels, core.queue_len)


def publish_radio(sink: MetricsSink, node: str, radio: StatsRadio) -> None:
    labels = {metrics.NODE: node}
    if radio.noise_floor is not None:
        sink.observe(metrics.NOISE_FLOOR_DBM, labels, radio.noise_floor)
    sink.observe(metrics.LAST_RSSI, labels, radio.last_rssi)
    sink.observe(metrics.LAST_SNR, labels, radio.last_snr)
    sink.observe(metrics.TX_AIRTIME_SECONDS, labels, radio.tx_air_secs)
    sink.observe(metrics.RX_AIRTIME_SECONDS, labels, radio.rx_air_secs)


def publish_packets(sink: MetricsSink, node: str, packets: StatsPackets) -> None:
    labels = {metrics.NODE: node}
    sink.observe(metrics.PACKETS_RECEIVED, labels, packets.recv)
    sink.observe(metrics.PACKETS_SENT, labels, packets.sent)
    sink.observe(metrics.PACKETS_FLOOD_TX, labels, packets.flood_tx)
    sink.observe(metrics.PACKETS_DIRECT_TX, labels, packets.direct_tx)
    sink.observe(metrics.PACKETS_FLOOD_RX, labels, packets.flood_rx)
    sink.observe(metrics.PACKETS_DIRECT_RX, labels, packets.direct_rx)


def publish_position(sink: MetricsSink, name: str, lat: float, lon: float) -> None:
    """Publish coordinates, skipping nodes that never set a position."""
    if lat == 0 and lon == 0:
        return
    labels = {metrics.NODE: name}
    sink.observe(metrics.NODE_LATITUDE, labels, lat)
    sink.observe(metrics.NODE_LONGITUDE, labels, lon)


def count_scrape_error(sink: MetricsSink, node: str) -> None:
    sink.observe(metrics.SCRAPE_ERRORS, {metrics.NODE: node}, 1)
