#!/usr/bin/env python3
"""Prometheus exporter for MeshCore radios.

Usage:
    python meshcore_stats.py -d /dev/ttyACM0                    # poll the companion radio
    python meshcore_stats.py -d /dev/ttyACM0 -r MyRepeater -p pw  # poll a repeater over the mesh
    python meshcore_stats.py -d /dev/ttyACM0 set-region EU      # configure radio and exit

Every option can also be set through a MESHCORE_* environment variable.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from enum import IntEnum
from types import FrameType

from collector import LOCAL_NODE, LocalCollector, RemoteCollector, run_periodic
from exporter import PrometheusSink, serve_metrics
from meshcore import REGIONS, ContactDirectory, MeshcoreError, PushDispatcher, Radio
from meshcore.protocol import DEFAULT_BAUDRATE, TRACE

logger = logging.getLogger(__name__)

DEFAULT_PORT = "/dev/ttyACM0"
DEFAULT_ADDR = ":9200"
DEFAULT_INTERVAL_S = 600.0
DEFAULT_LOG_LEVEL = "INFO"

TX_POWER_MIN_DBM = 1
TX_POWER_MAX_DBM = 22


class ExitCode(IntEnum):
    """Exit codes for meshcore-stats."""

    SUCCESS = 0
    FAILURE = 1  # Port or metrics listener could not be opened, or set-region failed
    USAGE = 2  # Bad arguments


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """Split "host:port" (host optional) into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"Listen address must be host:port or :port, got {addr!r}")
    return host, int(port)


def _env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def setup_logging(verbosity: int, quiet: bool, env_level: str = DEFAULT_LOG_LEVEL) -> None:
    logging.addLevelName(TRACE, "TRACE")
    if quiet:
        level = logging.WARNING
    elif verbosity >= 2:
        level = TRACE
    elif verbosity == 1:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(env_level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export MeshCore radio stats as Prometheus metrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -d /dev/ttyACM0                        Poll the companion radio
  %(prog)s -d /dev/ttyACM0 -r Hilltop -p secret   Poll a repeater over the mesh
  %(prog)s -d /dev/ttyACM0 set-region EU          Apply the EU preset and exit
""",
    )
    parser.add_argument(
        "-d",
        "--device",
        type=str,
        default=_env("MESHCORE_PORT", DEFAULT_PORT),
        help=f"Serial device path (env MESHCORE_PORT, default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-b",
        "--baudrate",
        type=int,
        default=int(_env("MESHCORE_BAUD", str(DEFAULT_BAUDRATE))),
        help=f"Baud rate (env MESHCORE_BAUD, default: {DEFAULT_BAUDRATE})",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for wire dumps)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    subparsers = parser.add_subparsers(dest="mode")

    run_parser = subparsers.add_parser("run", help="Poll the radio and serve metrics (default)")
    _add_run_args(run_parser, suppress_defaults=True)
    # run is the default mode, so its options are accepted without the sub-command too
    _add_run_args(parser)

    region_parser = subparsers.add_parser("set-region", help="Apply a radio region preset and exit")
    region_parser.add_argument(
        "region",
        nargs="?",
        help=f"Region preset ({', '.join(REGIONS)})",
    )
    region_parser.add_argument(
        "--tx-power",
        type=int,
        help=f"Also set TX power in dBm ({TX_POWER_MIN_DBM}-{TX_POWER_MAX_DBM})",
    )
    return parser


def _add_run_args(parser: argparse.ArgumentParser, suppress_defaults: bool = False) -> None:
    """Add run-mode options. The sub-command copy must not clobber top-level values."""

    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress_defaults else value

    parser.add_argument(
        "-a",
        "--addr",
        type=str,
        default=default(_env("MESHCORE_ADDR", DEFAULT_ADDR)),
        help=f"Metrics listen address (env MESHCORE_ADDR, default: {DEFAULT_ADDR})",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=default(float(_env("MESHCORE_INTERVAL", str(DEFAULT_INTERVAL_S)))),
        help=f"Polling interval in seconds (env MESHCORE_INTERVAL, default: {DEFAULT_INTERVAL_S:.0f})",
    )
    parser.add_argument(
        "-r",
        "--repeater",
        type=str,
        default=default(_env("MESHCORE_REPEATER", "")),
        help="Repeater name to poll over the mesh; empty polls the local radio (env MESHCORE_REPEATER)",
    )
    parser.add_argument(
        "-p",
        "--password",
        type=str,
        default=default(_env("MESHCORE_PASSWORD", "")),
        help="Repeater admin password (env MESHCORE_PASSWORD)",
    )


# -----------------------------------------------------------------------------
# Modes
# -----------------------------------------------------------------------------


def run_exporter(args: argparse.Namespace, stop: threading.Event | None = None) -> int:
    """Open the radio, serve metrics and poll until SIGINT/SIGTERM."""
    try:
        host, port = parse_listen_addr(args.addr)
    except ValueError as e:
        logger.error(str(e))
        return ExitCode.USAGE

    if stop is None:
        stop = threading.Event()

        def handle_signal(_sig: int, _frame: FrameType | None) -> None:
            logger.info("Signal received - shutting down after the current tick")
            stop.set()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    sink = PrometheusSink()
    directory = ContactDirectory()
    dispatcher = PushDispatcher(directory, sink)

    try:
        radio = Radio.open(args.device, args.baudrate, on_push=dispatcher.dispatch)
    except MeshcoreError as e:
        logger.error(f"Failed to open serial port {args.device}: {e}")
        return ExitCode.FAILURE
    radio.drain()

    try:
        if args.repeater:
            logger.info(f"Remote mode: polling repeater '{args.repeater}'")
            remote = RemoteCollector(radio, sink, directory, dispatcher, args.repeater, args.password)
            tick = remote.collect
        else:
            logger.info("Local mode: polling companion radio")
            dispatcher.node = LOCAL_NODE
            try:
                logger.info(f"Firmware version: {radio.get_version()}")
            except MeshcoreError as e:
                logger.warning(f"Could not read firmware version: {e}")
            tick = LocalCollector(radio, sink).tick

        try:
            serve_metrics(sink, host, port)
        except OSError as e:
            logger.error(f"Failed to serve metrics on {args.addr}: {e}")
            return ExitCode.FAILURE

        poller = threading.Thread(
            target=run_periodic, args=(tick, args.interval, stop), name="poller", daemon=True
        )
        poller.start()
        while poller.is_alive():
            poller.join(timeout=1.0)
    finally:
        radio.close()
        logger.info(f"Closed {args.device}")

    logger.info("Shutdown complete")
    return ExitCode.SUCCESS


def set_region(args: argparse.Namespace) -> int:
    """Apply a region preset (and optionally TX power) to the companion radio."""
    if not args.region or args.region.upper() not in REGIONS:
        if args.region:
            logger.error(f"Unknown region: {args.region}")
        print("Available regions:")
        for name, region in REGIONS.items():
            print(f"  {name}: {region.describe()}")
        return ExitCode.FAILURE

    if args.tx_power is not None and not TX_POWER_MIN_DBM <= args.tx_power <= TX_POWER_MAX_DBM:
        logger.error(f"TX power must be {TX_POWER_MIN_DBM}-{TX_POWER_MAX_DBM} dBm, got {args.tx_power}")
        return ExitCode.FAILURE

    region = REGIONS[args.region.upper()]
    try:
        radio = Radio.open(args.device, args.baudrate)
    except MeshcoreError as e:
        logger.error(f"Failed to open serial port {args.device}: {e}")
        return ExitCode.FAILURE

    try:
        radio.drain()
        radio.app_start()
        logger.info(f"Setting radio to {region.name}: {region.describe()}")
        radio.set_radio_params(region)
        if args.tx_power is not None:
            logger.info(f"Setting TX power to {args.tx_power} dBm")
            radio.set_radio_tx_power(args.tx_power)
    except MeshcoreError as e:
        logger.error(f"Failed to configure radio: {e}")
        return ExitCode.FAILURE
    finally:
        radio.close()

    logger.info("Radio configured")
    return ExitCode.SUCCESS


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet, _env("MESHCORE_LOG_LEVEL", DEFAULT_LOG_LEVEL))

    match args.mode:
        case "set-region":
            return set_region(args)
        case "run" | None:
            return run_exporter(args)
    parser.print_help()
    return ExitCode.USAGE


if __name__ == "__main__":
    sys.exit(main())
