"""Fixed-interval tick loop for the polling thread."""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


def run_periodic(
    tick: Callable[[], None],
    interval_s: float,
    stop: threading.Event,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Call tick every interval_s seconds until stop is set.

    The first tick runs immediately. The next one starts interval_s after the
    previous one started, or immediately if the tick overran. Ticks never
    overlap. An exception escaping a tick is logged and the loop continues.

    Returns the number of ticks run.
    """
    ticks = 0
    while not stop.is_set():
        started = clock()
        try:
            tick()
        except Exception:
            logger.exception("Collection tick failed")
        ticks += 1

        elapsed = clock() - started
        if elapsed >= interval_s:
            logger.debug(f"Tick took {elapsed:.1f}s (interval {interval_s:.1f}s), starting next immediately")
            continue
        stop.wait(interval_s - elapsed)
    return ticks
