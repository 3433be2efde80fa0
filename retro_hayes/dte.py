"""The attached terminal: a byte source and sink over a serial port or the console."""

import logging
import queue
import threading
from typing import Optional

import serial

from .errors import DTEError

logger = logging.getLogger(__name__)

DEL = 0x7F
BS = 0x08


class DTE:
    """
    Terminal side of the modem.

    A reader thread moves incoming bytes onto a queue so the pump can wait
    for a byte or a timer tick. Writes from several threads are serialized.
    """

    def __init__(self, port, debug: bool = False):
        """
        Args:
            port: pyserial Serial, LocalSerial, or anything with read/write/flush.
            debug: Log every byte written.
        """
        self.port = port
        self.debug = debug
        self._input: "queue.Queue[int]" = queue.Queue()
        self._write_lock = threading.Lock()
        self._stop = threading.Event()
        self._failed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._reader, name="dte-reader", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _reader(self) -> None:
        is_local = getattr(self.port, "is_local", False)
        while not self._stop.is_set():
            try:
                data = self.port.read(1)
            except (serial.SerialException, OSError, EOFError) as e:
                logger.error(f"DTE read failed: {e}")
                self._failed.set()
                self._stop.set()
                return
            for c in data:
                if is_local and c == DEL:
                    c = BS
                self._input.put(c)

    @property
    def failed(self) -> bool:
        return self._failed.is_set()

    def read_byte(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Next byte from the terminal, or None if nothing arrived in time.

        Raises:
            DTEError: Once the reader has died and every queued byte was read.
        """
        try:
            return self._input.get(timeout=timeout)
        except queue.Empty:
            if self._failed.is_set():
                raise DTEError("DTE input is gone")
            return None

    def write(self, data: bytes) -> None:
        if self.debug:
            logger.debug(f"Writing to DTE: {data!r}")
        with self._write_lock:
            try:
                self.port.write(data)
                self.port.flush()
            except (serial.SerialException, OSError) as e:
                raise DTEError(f"DTE write failed: {e}") from e

    def print_line(self, text: str = "", eol: bytes = b"\r\n") -> None:
        """Send a line of text followed by the line terminator."""
        self.write(text.encode(errors="replace") + eol)


def open_port(device: str = "", speed: int = 115200):
    """
    Open the DTE port.

    Args:
        device: Serial device path; empty for the local console.
        speed: Baud rate for a real serial port (8N1).

    Raises:
        serial.SerialException: If the device can't be opened.
    """
    if not device:
        from .local_serial import LocalSerial

        logger.info("Using the console as the DTE")
        return LocalSerial()
    logger.info(f"Opening {device} at {speed} bps")
    return serial.Serial(
        device,
        speed,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        timeout=0.1,
    )
