"""In-memory stand-ins for the serial port, the port opener and the metrics sink."""

import threading
from collections import defaultdict, deque

from meshcore.frame import HEADER_SIZE, Direction, encode_frame, uint16_from_bytes

# What pyserial (serialposix) raises on read once a USB serial adapter is unplugged
UNPLUGGED_MESSAGE = (
    "device reports readiness to read but returned no data "
    "(device disconnected or multiple access on port?)"
)


class MockSerialPort:
    """Mock serial port for unit testing.

    Reads come from an inbound buffer filled with inject(); writes are
    captured in `written`. An empty inbound buffer reads as b"", which is
    what pyserial returns when its read timeout expires.

    Set read_error / write_error to make the port fail like a vanished device.
    Set max_chunk to force short reads.
    """

    def __init__(self) -> None:
        self._rx = bytearray()
        self.written = bytearray()
        self.timeout: float | None = None
        self.closed = False
        self.read_error: OSError | None = None
        self.write_error: OSError | None = None
        self.max_chunk: int | None = None
        self.reads = 0
        self._lock = threading.Lock()

    def write(self, data: bytes, /) -> int:
        if self.write_error is not None:
            raise self.write_error
        with self._lock:
            self.written += data
        self.on_write(bytes(data))
        return len(data)

    def read(self, size: int = 1, /) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        with self._lock:
            self.reads += 1
            n = size if self.max_chunk is None else min(size, self.max_chunk)
            data = bytes(self._rx[:n])
            del self._rx[:n]
            return data

    def close(self) -> None:
        self.closed = True

    def on_write(self, data: bytes) -> None:
        """Hook for subclasses that answer commands."""

    @property
    def in_waiting(self) -> int:
        with self._lock:
            return len(self._rx)

    def inject(self, data: bytes) -> None:
        """Inject data as if received from the device."""
        with self._lock:
            self._rx += data

    def inject_frame(self, payload: bytes) -> None:
        self.inject(encode_frame(payload, Direction.RX))

    def sent_payloads(self) -> list[bytes]:
        """Split everything written so far into host -> device frame payloads."""
        out: list[bytes] = []
        data = bytes(self.written)
        pos = 0
        while pos + HEADER_SIZE <= len(data):
            assert data[pos] == Direction.TX.value, f"bad tx marker at {pos}"
            length = uint16_from_bytes(data[pos + 1 : pos + HEADER_SIZE])
            start = pos + HEADER_SIZE
            out.append(data[start : start + length])
            pos = start + length
        return out

    def sent_codes(self) -> list[int]:
        return [p[0] for p in self.sent_payloads() if p]


class ScriptedSerialPort(MockSerialPort):
    """Mock port that answers each command with queued reply frames.

    reply(code, *payloads) queues one set of reply payloads for the next
    command with that opcode. Commands with nothing queued get no answer,
    which reads as a timeout.
    """

    def __init__(self) -> None:
        super().__init__()
        self._replies: dict[int, deque[list[bytes]]] = defaultdict(deque)

    def reply(self, code: int, *payloads: bytes) -> None:
        self._replies[code].append(list(payloads))

    def on_write(self, data: bytes) -> None:
        if len(data) <= HEADER_SIZE:
            return
        queue = self._replies.get(data[HEADER_SIZE])
        if queue:
            for payload in queue.popleft():
                self.inject_frame(payload)


class PortOpener:
    """Callable port factory that hands out ports in order.

    An OSError in the list is raised instead of returning a port, which is
    how a failed reopen looks to the radio session.
    """

    def __init__(self, *ports: "MockSerialPort | OSError") -> None:
        self._ports = deque(ports)
        self.opens = 0

    def __call__(self) -> MockSerialPort:
        self.opens += 1
        item = self._ports.popleft()
        if isinstance(item, OSError):
            raise item
        return item


class FakeSink:
    """MetricsSink that records every observation."""

    def __init__(self) -> None:
        self.observations: list[tuple[str, dict[str, str], float]] = []

    def observe(self, name: str, labels: dict[str, str], value: float) -> None:
        self.observations.append((name, dict(labels), value))

    def values(self, name: str, **labels: str) -> list[float]:
        return [
            v
            for n, lb, v in self.observations
            if n == name and all(lb.get(k) == want for k, want in labels.items())
        ]

    def last(self, name: str, **labels: str) -> float | None:
        found = self.values(name, **labels)
        return found[-1] if found else None

    def total(self, name: str, **labels: str) -> float:
        return sum(self.values(name, **labels))
