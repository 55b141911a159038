"""Local polling: stats from the attached companion radio itself.

Each round requests core, radio and packet stats in turn. A failure on one
does not stop the others. A fatal transport error triggers recovery and the
round restarts from the top.
"""

import logging
import time
from collections.abc import Callable

from collector.publish import count_scrape_error, publish_core, publish_packets, publish_radio
from collector.recovery import recover
from exporter.metrics import MetricsSink
from meshcore.errors import MeshcoreError, is_fatal
from meshcore.radio import Radio

logger = logging.getLogger(__name__)

LOCAL_NODE = "local"


class LocalCollector:
    """Polls the companion radio's own stats."""

    def __init__(
        self,
        radio: Radio,
        sink: MetricsSink,
        node: str = LOCAL_NODE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.radio = radio
        self.sink = sink
        self.node = node
        self._sleep = sleep

    def collect(self) -> bool:
        """Collect one round of stats.

        Returns True if a reconnect happened and the round must be repeated.
        """
        steps = (
            ("core", self.radio.get_stats_core, publish_core),
            ("radio", self.radio.get_stats_radio, publish_radio),
            ("packet", self.radio.get_stats_packets, publish_packets),
        )
        for name, fetch, publish in steps:
            try:
                stats = fetch()
            except MeshcoreError as e:
                count_scrape_error(self.sink, self.node)
                if is_fatal(e):
                    logger.error(f"Fatal transport error getting {name} stats: {e}")
                    recover(self.radio, self.sink, self.node, self._sleep)
                    return True
                logger.warning(f"Error getting {name} stats: {e}")
                continue
            publish(self.sink, self.node, stats)  # type: ignore[arg-type]
        return False

    def tick(self) -> None:
        """Run one scheduled tick, repeating the round after each reconnect."""
        while self.collect():
            logger.info("Reconnected, restarting collection")
