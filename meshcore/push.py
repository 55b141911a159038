"""Push notification dispatch for the companion radio session.

Push frames absorbed while a command waits for its response end up here.
Overheard mesh packets (log-rx-data) are attributed to the last forwarder
through the contact directory and published as mesh traffic metrics; other
push codes have no consumer outside a wait and are dropped.
"""

import logging

from exporter import metrics
from exporter.metrics import MetricsSink
from meshcore.contacts import ContactDirectory
from meshcore.encoding import parse_log_rx_data
from meshcore.errors import ProtocolError
from meshcore.protocol import PushCode

logger = logging.getLogger(__name__)

# Sender label for packets with an empty path (heard directly from the origin)
DIRECT_SENDER = "direct"
UNKNOWN_NODE = "unknown"


class PushDispatcher:
    """Handles push frames read during synchronous exchanges."""

    def __init__(self, directory: ContactDirectory, sink: MetricsSink, node: str = "") -> None:
        self.directory = directory
        self.sink = sink
        self.node = node

    def dispatch(self, data: bytes) -> None:
        if not data:
            return
        match data[0]:
            case PushCode.LOG_RX_DATA:
                self._handle_log_rx_data(data)
            case code:
                logger.debug(f"Ignoring push 0x{code:02X} ({len(data)} bytes) outside of a wait")

    def _handle_log_rx_data(self, data: bytes) -> None:
        try:
            rx = parse_log_rx_data(data)
        except ProtocolError as e:
            logger.debug(f"Dropping malformed log rx data: {e}")
            return

        if rx.path:
            sender = self.directory.resolve_by_path_byte(rx.path[0])
        else:
            sender = DIRECT_SENDER

        labels = {metrics.NODE: self.node or UNKNOWN_NODE, metrics.SENDER: sender}
        self.sink.observe(metrics.MESH_PACKETS_OBSERVED, labels, 1)
        self.sink.observe(metrics.MESH_PACKET_RSSI, labels, rx.rssi)
        self.sink.observe(metrics.MESH_PACKET_SNR, labels, rx.snr)
        if rx.payload_len > 0:
            self.sink.observe(metrics.MESH_PACKET_BYTES, labels, rx.payload_len)
        logger.debug(
            f"Mesh packet from {sender}: rssi={rx.rssi} snr={rx.snr:.2f} "
            f"hops={len(rx.path)} payload={max(rx.payload_len, 0)} bytes"
        )
