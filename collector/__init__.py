"""Polling state machines for meshcore-stats.

Contains:
- local: LocalCollector, polls the attached companion radio
- remote: RemoteCollector, SessionState, polls a repeater across the mesh
- recovery: recover, reconnect_delay
- publish: stats record to metric observations
- scheduler: run_periodic
"""

from collector.local import LOCAL_NODE, LocalCollector
from collector.recovery import recover, reconnect_delay
from collector.remote import RemoteCollector, SessionState
from collector.scheduler import run_periodic

__all__ = [
    # Collectors
    "LocalCollector",
    "RemoteCollector",
    "SessionState",
    "LOCAL_NODE",
    # Recovery
    "recover",
    "reconnect_delay",
    # Scheduling
    "run_periodic",
]
