"""Serial device setup for the companion radio.

Contains:
- log_device_info: Log USB metadata about a serial device
- open_serial: Open and configure a serial port
"""

import logging
import os

import serial
import serial.tools.list_ports

from meshcore.protocol import DEFAULT_READ_TIMEOUT_S, DEFAULT_WRITE_TIMEOUT_S

logger = logging.getLogger(__name__)


def log_device_info(device: str) -> None:
    """Log information about a serial device."""
    real_path = os.path.realpath(device)
    if real_path.startswith("/dev/pts/"):
        logger.info(f"Device: {device} -> {real_path} (pty)")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device in (device, real_path)]
    if not ports:
        logger.info(f"Device: {device} (not in port list)")
        return

    info = ports[0]
    logger.info(f"Device: {info.device}")
    logger.info(f"Description: {info.description}")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")
    if info.serial_number:
        logger.debug(f"Serial Number: {info.serial_number}")


def open_serial(device: str, baudrate: int) -> serial.Serial:
    """Open and configure a serial port (8N1, no flow control)."""
    log_device_info(device)
    ser = serial.Serial(
        port=device,
        baudrate=baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=False,
        timeout=DEFAULT_READ_TIMEOUT_S,
        write_timeout=DEFAULT_WRITE_TIMEOUT_S,
    )
    ser.reset_input_buffer()
    logger.debug(f"Serial port: baudrate={ser.baudrate}, timeout={ser.timeout}s")
    return ser
