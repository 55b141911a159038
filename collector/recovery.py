"""Reboot-and-reconnect recovery after a fatal transport error.

The reconnect loop is the one unbounded retry in the service: there is
nothing else to do while the port is gone. Delays grow linearly with the
attempt number and are capped at RECONNECT_MAX_DELAY_S.
"""

import logging
import time
from collections.abc import Callable

from exporter import metrics
from exporter.metrics import MetricsSink
from meshcore.errors import MeshcoreError
from meshcore.radio import Radio

logger = logging.getLogger(__name__)

RECONNECT_BASE_DELAY_S = 5.0
RECONNECT_MAX_DELAY_S = 60.0


def reconnect_delay(attempt: int) -> float:
    """Delay before reconnect attempt number `attempt` (1-based)."""
    return min(attempt * RECONNECT_BASE_DELAY_S, RECONNECT_MAX_DELAY_S)


def recover(
    radio: Radio,
    sink: MetricsSink,
    node: str,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Reboot the radio, then reopen the port until it succeeds.

    The reboot is best effort since the port may already be dead. Stale input
    is drained after reconnecting.

    Returns:
        Number of reconnect attempts made.
    """
    labels = {metrics.NODE: node}

    logger.warning("Rebooting companion radio")
    sink.observe(metrics.RADIO_REBOOTS, labels, 1)
    try:
        radio.reboot()
    except MeshcoreError as e:
        logger.warning(f"Reboot command failed (port may be gone): {e}")

    attempt = 0
    while True:
        attempt += 1
        delay = reconnect_delay(attempt)
        logger.info(f"Reconnecting in {delay:.0f}s (attempt {attempt})")
        sleep(delay)
        try:
            radio.reconnect()
        except MeshcoreError as e:
            logger.warning(f"Reconnect attempt {attempt} failed: {e}")
            continue
        break

    sink.observe(metrics.SERIAL_RECONNECTS, labels, 1)
    logger.info(f"Serial connection recovered after {attempt} attempt(s)")
    radio.drain()
    return attempt
