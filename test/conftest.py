"""pytest configuration and fixtures for meshcore-stats tests.

Provides:
- mock_port / scripted_port: in-memory serial ports (see fakes.py)
- sink: a FakeSink recording metric observations
- no_sleep: a sleep replacement that records requested delays
- socat PTY pair fixture for integration tests
- Markers for unit vs integration tests
"""

import re
import subprocess
import sys
import time
from collections.abc import Generator

import pytest

from fakes import FakeSink, MockSerialPort, ScriptedSerialPort


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (requires socat)")


@pytest.fixture
def mock_port() -> MockSerialPort:
    return MockSerialPort()


@pytest.fixture
def scripted_port() -> ScriptedSerialPort:
    return ScriptedSerialPort()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


class RecordingSleep:
    """Replacement for time.sleep that returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def pty_pair() -> Generator[tuple[str, str, subprocess.Popen[str]], None, None]:
    """Create a connected PTY pair using socat.

    Yields (pty1, pty2, socat_process).

    The PTYs are connected: data written to pty1 appears on pty2 and vice versa.
    One end plays the companion radio, the other is opened by the code under test.

    Requires: socat installed and Linux platform.
    """
    if sys.platform != "linux":
        pytest.skip("socat PTY fixture requires Linux")

    try:
        subprocess.run(["which", "socat"], check=True, capture_output=True)
    except subprocess.CalledProcessError:
        pytest.skip("socat not installed")

    socat = subprocess.Popen(
        ["socat", "-d", "-d", "pty,raw,echo=0", "pty,raw,echo=0"],
        stderr=subprocess.PIPE,
        text=True,
    )

    # socat reports each PTY name on stderr
    ptys: list[str] = []
    try:
        for _ in range(20):
            if socat.poll() is not None:
                raise RuntimeError(f"socat exited early with code {socat.returncode}")

            assert socat.stderr is not None
            line = socat.stderr.readline()
            if "PTY is" in line:
                match = re.search(r"/dev/pts/\d+", line)
                if match:
                    ptys.append(match.group())
            if len(ptys) == 2:
                break
            time.sleep(0.05)
        else:
            raise RuntimeError(f"Failed to get PTY pair from socat, got: {ptys}")

        yield ptys[0], ptys[1], socat

    finally:
        if socat.poll() is None:
            socat.terminate()
            socat.wait(timeout=5)
        if socat.stderr:
            socat.stderr.close()
